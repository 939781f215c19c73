"""HTTP Cache-Control header utilities.

``build_cache_control`` joins directives in a fixed order so equal options
always produce byte-identical headers (edge caches key on them).
"""

from typing import Dict, Optional

from starlette.responses import Response

NO_CACHE_VALUE = "no-cache, no-store, must-revalidate"


def build_cache_control(
    max_age: Optional[int] = None,
    s_max_age: Optional[int] = None,
    stale_while_revalidate: Optional[int] = None,
    stale_if_error: Optional[int] = None,
    private: bool = False,
    no_cache: bool = False,
    must_revalidate: bool = False,
) -> str:
    """Build a Cache-Control header value.

    Parameters
    - max_age: Browser cache lifetime in seconds
    - s_max_age: Shared (edge) cache lifetime in seconds
    - stale_while_revalidate: Seconds stale content may be served while refreshing
    - stale_if_error: Seconds stale content may be served if the origin fails
    - private: Browser-only caching, no CDN
    - no_cache: Disable caching entirely; every other option is ignored
    - must_revalidate: Require revalidation before serving stale content
    """
    if no_cache:
        return NO_CACHE_VALUE

    directives = ["private" if private else "public"]

    if max_age is not None:
        directives.append(f"max-age={max_age}")
    if s_max_age is not None:
        directives.append(f"s-maxage={s_max_age}")
    if stale_while_revalidate is not None:
        directives.append(f"stale-while-revalidate={stale_while_revalidate}")
    if stale_if_error is not None:
        directives.append(f"stale-if-error={stale_if_error}")
    if must_revalidate:
        directives.append("must-revalidate")

    return ", ".join(directives)


class CachePresets:
    """Preset cache configurations for common response types."""

    @staticmethod
    def public_page() -> str:
        """Blog posts and listings: browser 5m, edge 10m, SWR 1h."""
        return build_cache_control(max_age=300, s_max_age=600, stale_while_revalidate=3600)

    @staticmethod
    def static_asset() -> str:
        """Images, fonts, CSS, JS: browser 1h, edge 1d, SWR 1w."""
        return build_cache_control(max_age=3600, s_max_age=86400, stale_while_revalidate=604800)

    @staticmethod
    def api_read() -> str:
        """Read-only API responses: browser 1m, edge 5m, SWR 30m."""
        return build_cache_control(max_age=60, s_max_age=300, stale_while_revalidate=1800)

    @staticmethod
    def search_index() -> str:
        # The lexical index changes rarely; edge keeps it as long as the KV copy.
        return build_cache_control(max_age=300, s_max_age=900, stale_while_revalidate=1800)

    @staticmethod
    def no_cache() -> str:
        return build_cache_control(no_cache=True)

    @staticmethod
    def private() -> str:
        return build_cache_control(private=True, max_age=300, must_revalidate=True)


def with_cache_headers(
    response: Response,
    cache_control: str,
    additional_headers: Optional[Dict[str, str]] = None,
) -> Response:
    """Apply Cache-Control (and a default ``Vary``) to a response in place."""
    response.headers["Cache-Control"] = cache_control
    if "vary" not in response.headers:
        response.headers["Vary"] = "Accept-Encoding"
    for key, value in (additional_headers or {}).items():
        response.headers[key] = value
    return response
