"""Resolution of caller-supplied preview URLs."""

import logging
import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from og_capture.api.config import PREVIEW_MODE_PARAM
from og_capture.core.errors import InvalidTargetUrl

logger = logging.getLogger(__name__)

_ABSOLUTE_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)
_ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class ResolvedTarget:
    """Absolute http(s) URL of a page rendered in preview mode."""

    url: str

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname or ""


def resolve_target_url(raw_url: str, base_url: str) -> ResolvedTarget:
    """
    Resolve a raw ``url`` parameter to an absolute preview-mode URL.

    Absolute http(s) URLs are used as-is; anything else is treated as a path
    relative to ``base_url`` (e.g. ``/components/button``).

    Args:
        raw_url: URL or path supplied by the caller
        base_url: Origin used for relative paths

    Returns:
        ResolvedTarget with the preview marker parameter set

    Raises:
        InvalidTargetUrl: If the input is empty, unparseable or not http(s)
    """
    trimmed = raw_url.strip()
    if not trimmed:
        raise InvalidTargetUrl("Missing `url` query param")

    try:
        if _ABSOLUTE_HTTP_URL.match(trimmed):
            parts = urlsplit(trimmed)
        else:
            parts = urlsplit(urljoin(base_url, trimmed))
        # Accessing the port validates it
        parts.port
    except ValueError as e:
        raise InvalidTargetUrl(f"Invalid URL provided: {e}")

    scheme = parts.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES:
        raise InvalidTargetUrl(
            "URL must start with http:// or https:// (after resolution)."
        )
    if not parts.hostname:
        raise InvalidTargetUrl(f"Invalid URL provided: {trimmed}")

    key, value = PREVIEW_MODE_PARAM
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key
    ]
    query.append((key, value))

    path = parts.path or "/"
    resolved = urlunsplit((scheme, parts.netloc, path, urlencode(query), parts.fragment))
    logger.debug(f"Resolved target {raw_url!r} -> {resolved}")
    return ResolvedTarget(url=resolved)
