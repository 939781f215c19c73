"""Tag-versioned key/value cache.

A family of keys shares one invalidation tag. The tag's current version lives
in its own entry (``cache:version:{tag}``) and is appended to physical keys
as ``{key}:v{version}``. Bumping the version makes every entry written under
the previous version unreachable in O(1), without prefix deletes; the orphaned
entries expire on their own TTL.

Failure policy
- Every storage error or timeout is logged and swallowed: reads become a miss,
  writes become a no-op. Nothing may depend on a hit for correctness.
- ``invalidate`` is a plain read-increment-write. Two concurrent invalidations
  of one tag can lose an increment; the next invalidation recovers it and the
  per-entry TTL bounds staleness in the meantime.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import structlog

from edgepress.common.metrics import MetricsCollector
from .base import KeyValueStore

logger = structlog.get_logger("cache.tagged")

DEFAULT_TTL = 300  # 5 minutes
VERSION_KEY_PREFIX = "cache:version:"
DEFAULT_VERSION = "0"


def cache_key(prefix: str, *params: Any) -> str:
    """Build a namespaced cache key from components.

    >>> cache_key("posts:published", 10, 0)
    'posts:published:10:0'
    """
    return f"{prefix}:{':'.join(str(p) for p in params)}"


def version_key(tag: str) -> str:
    """Key of the version counter entry for ``tag``."""
    return f"{VERSION_KEY_PREFIX}{tag}"


class TagVersionedCache:
    """Key/value cache wrapper with tag-based bulk invalidation.

    Parameters
    - store: Backing ``KeyValueStore`` (string values, per-key TTL)
    - default_ttl: TTL in seconds used when ``set`` is called without one
    - op_timeout: Upper bound in seconds for each store call
    - metrics: Optional collector for hit/miss counters
    """

    def __init__(
        self,
        store: KeyValueStore,
        default_ttl: int = DEFAULT_TTL,
        op_timeout: Optional[float] = 1.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.default_ttl = default_ttl
        self.op_timeout = op_timeout
        self.metrics = metrics

    async def _call(self, operation: Awaitable[Any]) -> Any:
        if self.op_timeout is None:
            return await operation
        return await asyncio.wait_for(operation, timeout=self.op_timeout)

    async def current_version(self, tag: str) -> str:
        """Read the tag's version from the store, defaulting to ``"0"``."""
        raw = await self._call(self.store.get(version_key(tag)))
        return raw if raw is not None else DEFAULT_VERSION

    async def physical_key(self, key: str, tag: Optional[str] = None) -> str:
        """Resolve the key actually written to the store."""
        if tag is None:
            return key
        version = await self.current_version(tag)
        return f"{key}:v{version}"

    async def get(self, key: str, tag: Optional[str] = None) -> Optional[Any]:
        """Return the cached value, or ``None`` on miss, parse failure, or error."""
        try:
            physical = await self.physical_key(key, tag)
            raw = await self._call(self.store.get(physical))
        except Exception as e:
            logger.warning("Cache read failed", key=key, tag=tag, error=str(e) or type(e).__name__)
            self._record(hit=False)
            return None

        if raw is None:
            logger.debug("Cache miss", key=key, tag=tag)
            self._record(hit=False)
            return None

        try:
            value = json.loads(raw)
        except ValueError as e:
            logger.warning("Cached payload could not be parsed", key=physical, error=str(e))
            self._record(hit=False)
            return None

        logger.debug("Cache hit", key=key, tag=tag)
        self._record(hit=True)
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tag: Optional[str] = None,
    ) -> None:
        """Store ``value`` as JSON under the current tag version."""
        try:
            physical = await self.physical_key(key, tag)
            payload = json.dumps(value, default=str)
            await self._call(self.store.put(physical, payload, ttl or self.default_ttl))
            logger.debug("Cache write", key=physical, ttl=ttl or self.default_ttl)
        except Exception as e:
            logger.warning("Cache write failed", key=key, tag=tag, error=str(e) or type(e).__name__)

    async def delete(self, key: str) -> None:
        """Delete one untagged key."""
        try:
            await self._call(self.store.delete(key))
            logger.debug("Cache key deleted", key=key)
        except Exception as e:
            logger.warning("Cache delete failed", key=key, error=str(e) or type(e).__name__)

    async def invalidate(self, tag: str) -> Optional[int]:
        """Bump the tag's version so all entries under the old version are unreachable.

        Returns the new version, or ``None`` when the store was unavailable.
        """
        counter_key = version_key(tag)
        try:
            raw = await self._call(self.store.get(counter_key))
            try:
                version = int(raw) if raw is not None else 0
            except ValueError:
                logger.warning("Corrupt cache version counter, restarting", tag=tag, raw=raw)
                version = 0
            new_version = version + 1
            # Counters never expire; losing one would resurrect old entries.
            await self._call(self.store.put(counter_key, str(new_version), None))
        except Exception as e:
            logger.warning("Cache invalidation failed", tag=tag, error=str(e) or type(e).__name__)
            return None

        logger.info("Cache tag invalidated", tag=tag, version=new_version)
        return new_version

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
        tag: Optional[str] = None,
        encode: Optional[Callable[[Any], Any]] = None,
        decode: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """Cache-aside read: return the cached value or load, store, and return it.

        Loader errors propagate; only cache errors are swallowed. A cached
        payload that ``decode`` rejects is treated as a miss and overwritten.
        """
        cached = await self.get(key, tag=tag)
        if cached is not None:
            if decode is None:
                return cached
            try:
                return decode(cached)
            except (ValueError, TypeError) as e:
                logger.warning("Cached payload has unexpected shape", key=key, tag=tag, error=str(e))

        value = await loader()
        await self.set(key, encode(value) if encode else value, ttl=ttl, tag=tag)
        return value

    def _record(self, hit: bool) -> None:
        if self.metrics is None:
            return
        if hit:
            self.metrics.record_cache_hit("kv")
        else:
            self.metrics.record_cache_miss("kv")
