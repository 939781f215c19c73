"""Edge response cache for anonymous GET requests.

Caches whole HTTP responses keyed by the request URL. This layer is
independent of the tag-versioned KV cache: it is purged explicitly by URL
after publish/unpublish and otherwise relies on ``max-age``.

Eligibility
- ``build_edge_cache_key``: GET without a ``Cookie`` header
- ``can_edge_cache``: the above, and the path is not under ``/admin`` or ``/api``
- Responses are stored only when 2xx and free of ``Set-Cookie``

Like every cache here, failures are logged and treated as a miss.
"""

import asyncio
import base64
import json
import re
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Optional, Union

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError
from starlette.datastructures import URL
from starlette.requests import Request
from starlette.responses import Response

from edgepress.common.metrics import MetricsCollector
from .base import CacheUnavailable

logger = structlog.get_logger("cache.edge")

EDGE_CACHE_TTL = 300  # 5 minutes
EXCLUDED_PATH_PREFIXES = ("/admin", "/api")
EDGE_CACHE_STATUS_HEADER = "x-edge-cache"

_MAX_AGE_RE = re.compile(r"max-age=(\d+)")


class ResponseCacheBackend(ABC):
    """Abstract HTTP response store keyed by canonical URL."""

    @abstractmethod
    async def match(self, key: str) -> Optional[Response]:
        """Return the stored response for ``key`` or ``None``."""
        pass

    @abstractmethod
    async def put(self, key: str, response: Response) -> None:
        """Store a materialized response; lifetime comes from its Cache-Control."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove the entry; ``True`` if something was deleted."""
        pass


class RedisResponseCache(ResponseCacheBackend):
    """Response store on Redis.

    Each entry is a JSON document with status, headers, and base64 body,
    expiring after the ``max-age`` found in the stored Cache-Control header.
    """

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "edge:",
        client: Optional[redis.Redis] = None,
    ):
        self.redis_client = client or redis.from_url(redis_url, decode_responses=True)
        self.key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def match(self, key: str) -> Optional[Response]:
        try:
            raw = await self.redis_client.get(self._key(key))
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"Edge cache lookup failed: {e}") from e
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
            body = base64.b64decode(entry["body"])
            return Response(
                content=body,
                status_code=entry["status"],
                headers=dict(entry["headers"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise CacheUnavailable(f"Edge cache entry unreadable: {e}") from e

    async def put(self, key: str, response: Response) -> None:
        match = _MAX_AGE_RE.search(response.headers.get("cache-control", ""))
        ttl = int(match.group(1)) if match else EDGE_CACHE_TTL
        entry = {
            "status": response.status_code,
            "headers": list(response.headers.items()),
            "body": base64.b64encode(response.body).decode("ascii"),
        }
        try:
            await self.redis_client.setex(self._key(key), ttl, json.dumps(entry))
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"Edge cache store failed: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            deleted = await self.redis_client.delete(self._key(key))
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"Edge cache delete failed: {e}") from e
        return bool(deleted)

    async def close(self) -> None:
        await self.redis_client.aclose()


def build_edge_cache_key(request: Request) -> Optional[Request]:
    """Return the request itself as the cache key, or ``None`` if not cacheable.

    Non-GET requests and requests carrying a ``Cookie`` header are never cached.
    """
    if request.method != "GET":
        return None
    if "cookie" in request.headers:
        return None
    return request


def can_edge_cache(request: Request) -> bool:
    """Determine if a request is eligible for edge caching.

    Excludes non-GET requests, authenticated requests, and admin/API routes.
    """
    if build_edge_cache_key(request) is None:
        return False
    path = request.url.path
    return not any(path.startswith(prefix) for prefix in EXCLUDED_PATH_PREFIXES)


def is_ok(response: Response) -> bool:
    return 200 <= response.status_code < 300


def with_edge_cache_headers(response: Response, hit: bool) -> Response:
    """Mark a response with ``x-edge-cache: hit|miss``."""
    response.headers[EDGE_CACHE_STATUS_HEADER] = "hit" if hit else "miss"
    return response


class EdgeResponseCache:
    """Whole-response cache keyed by normalized request.

    Parameters
    - backend: ``ResponseCacheBackend`` holding the responses
    - default_ttl: ``max-age`` applied when ``put`` gets no explicit TTL
    - op_timeout: Upper bound in seconds for each backend call
    - metrics: Optional collector for hit/miss counters
    """

    def __init__(
        self,
        backend: ResponseCacheBackend,
        default_ttl: int = EDGE_CACHE_TTL,
        op_timeout: Optional[float] = 1.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.backend = backend
        self.default_ttl = default_ttl
        self.op_timeout = op_timeout
        self.metrics = metrics

    build_key = staticmethod(build_edge_cache_key)
    can_cache = staticmethod(can_edge_cache)

    async def _call(self, operation: Awaitable[Any]) -> Any:
        if self.op_timeout is None:
            return await operation
        return await asyncio.wait_for(operation, timeout=self.op_timeout)

    async def get(self, request: Request) -> Optional[Response]:
        """Look up a cached response for an eligible request."""
        key = build_edge_cache_key(request)
        if key is None:
            return None
        url = str(key.url)
        try:
            cached = await self._call(self.backend.match(url))
        except Exception as e:
            logger.warning("Edge cache lookup failed", url=url, error=str(e) or type(e).__name__)
            cached = None

        if self.metrics is not None:
            if cached is None:
                self.metrics.record_cache_miss("edge")
            else:
                self.metrics.record_cache_hit("edge")
        return cached

    async def put(self, request: Request, response: Response, ttl: Optional[int] = None) -> bool:
        """Store a copy of ``response`` with ``Cache-Control: public, max-age=ttl``.

        Only successful responses without ``Set-Cookie`` are stored, so a
        response that sets authentication state is never shared. Returns
        ``True`` when the copy was written.
        """
        key = build_edge_cache_key(request)
        if key is None:
            return False
        if not is_ok(response) or "set-cookie" in response.headers:
            return False

        body = getattr(response, "body", None)
        if body is None:
            logger.debug("Skipping edge cache for streaming response", url=str(key.url))
            return False

        ttl = ttl or self.default_ttl
        headers = dict(response.headers)
        headers["cache-control"] = f"public, max-age={ttl}"
        cacheable = Response(content=body, status_code=response.status_code, headers=headers)

        url = str(key.url)
        try:
            await self._call(self.backend.put(url, cacheable))
        except Exception as e:
            logger.warning("Edge cache store failed", url=url, error=str(e) or type(e).__name__)
            return False

        logger.debug("Edge cache stored", url=url, ttl=ttl)
        return True

    async def delete(self, url: Union[str, URL]) -> bool:
        """Purge one canonical URL. Returns ``True`` if an entry was removed."""
        try:
            deleted = await self._call(self.backend.delete(str(url)))
        except Exception as e:
            logger.warning("Edge cache purge failed", url=str(url), error=str(e) or type(e).__name__)
            return False

        logger.info("Edge cache purged", url=str(url), deleted=deleted)
        return bool(deleted)
