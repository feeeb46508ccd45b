"""Query string helpers."""

from typing import Optional, Sequence, Union
from urllib.parse import unquote

QueryValue = Union[str, Sequence[str], None]

_TRUTHY = ("1", "true")


def get_string_query_param(value: QueryValue) -> Optional[str]:
    """Return a single non-empty string value, or None."""
    if isinstance(value, str) and value:
        return value
    return None


def is_truthy_query_param(value: QueryValue) -> bool:
    """
    Interpret a flag parameter.

    A bare flag (``?fresh``), ``1`` and ``true`` (any case) are truthy; with
    repeated parameters any truthy occurrence wins.
    """
    if value is None:
        return False
    if not isinstance(value, str):
        return any(is_truthy_query_param(item) for item in value)
    if value == "":
        return True
    return value.lower() in _TRUTHY


def decode_query_value(value: Optional[str]) -> Optional[str]:
    """Undo an extra level of percent-encoding added by some callers."""
    if value is None:
        return None
    return unquote(value)
