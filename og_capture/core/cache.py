"""HTTP caching contract for captured previews."""

from typing import MutableMapping, Optional

ONE_YEAR_IN_SECONDS = 31_536_000
BUILD_TIME_HEADER = "X-Build-Time"

LONG_LIVED_CACHE_CONTROL = (
    f"public, immutable, no-transform, "
    f"max-age={ONE_YEAR_IN_SECONDS}, s-maxage={ONE_YEAR_IN_SECONDS}"
)


def build_cache_headers(build_time: Optional[str], is_fresh: bool) -> dict[str, str]:
    """
    Build response cache headers.

    A fresh request disables caching entirely. Otherwise the image is cached
    for a year; the build time is echoed so caches can be keyed on it.

    Args:
        build_time: Build fingerprint supplied by the caller
        is_fresh: Whether the caller asked to bypass caches

    Returns:
        Header name to value mapping
    """
    if is_fresh:
        return {"Cache-Control": "no-store"}

    headers = {"Cache-Control": LONG_LIVED_CACHE_CONTROL}
    if build_time:
        headers[BUILD_TIME_HEADER] = build_time
    return headers


def apply_cache_headers(
    headers: MutableMapping[str, str], build_time: Optional[str], is_fresh: bool
) -> None:
    """Set the cache headers on an outgoing header mapping."""
    headers.update(build_cache_headers(build_time, is_fresh))
