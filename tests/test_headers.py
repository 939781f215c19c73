"""Tests for Cache-Control header building."""

from starlette.responses import Response

from edgepress.cache.headers import CachePresets, build_cache_control, with_cache_headers


def test_no_cache_short_circuits():
    assert build_cache_control(no_cache=True, max_age=60) == "no-cache, no-store, must-revalidate"
    assert build_cache_control(no_cache=True, private=True, s_max_age=10) == "no-cache, no-store, must-revalidate"


def test_directive_order_is_fixed():
    value = build_cache_control(
        must_revalidate=True,
        stale_if_error=86400,
        stale_while_revalidate=60,
        s_max_age=600,
        max_age=300,
    )
    assert value == (
        "public, max-age=300, s-maxage=600, stale-while-revalidate=60, "
        "stale-if-error=86400, must-revalidate"
    )


def test_private_and_bare_public():
    assert build_cache_control() == "public"
    assert build_cache_control(private=True, max_age=0) == "private, max-age=0"


def test_presets():
    assert CachePresets.public_page() == "public, max-age=300, s-maxage=600, stale-while-revalidate=3600"
    assert CachePresets.static_asset() == "public, max-age=3600, s-maxage=86400, stale-while-revalidate=604800"
    assert CachePresets.api_read() == "public, max-age=60, s-maxage=300, stale-while-revalidate=1800"
    assert CachePresets.search_index() == "public, max-age=300, s-maxage=900, stale-while-revalidate=1800"
    assert CachePresets.no_cache() == "no-cache, no-store, must-revalidate"
    assert CachePresets.private() == "private, max-age=300, must-revalidate"


def test_with_cache_headers_sets_vary_default():
    response = with_cache_headers(Response("ok"), CachePresets.api_read(), {"X-Extra": "1"})
    assert response.headers["cache-control"] == CachePresets.api_read()
    assert response.headers["vary"] == "Accept-Encoding"
    assert response.headers["x-extra"] == "1"


def test_with_cache_headers_keeps_existing_vary():
    response = Response("ok", headers={"Vary": "Cookie"})
    with_cache_headers(response, CachePresets.private())
    assert response.headers["vary"] == "Cookie"
