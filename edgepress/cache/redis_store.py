"""Redis implementation of the key/value store."""

from typing import Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from .base import CacheUnavailable, KeyValueStore

logger = structlog.get_logger("cache.redis")


class RedisKeyValueStore(KeyValueStore):
    """Key/value store on ``redis.asyncio``.

    Values are stored as UTF-8 strings; ``put`` with a TTL maps to ``SETEX``.
    """

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.redis_client = client or redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.redis_client.get(key)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"Redis GET failed for {key}: {e}") from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            if ttl:
                await self.redis_client.setex(key, ttl, value)
            else:
                await self.redis_client.set(key, value)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"Redis SET failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis_client.delete(key)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"Redis DEL failed for {key}: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis_client.ping())
        except (RedisError, OSError) as e:
            logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        try:
            await self.redis_client.aclose()
            logger.info("Redis key/value store closed")
        except (RedisError, OSError) as e:
            logger.warning("Failed to close Redis key/value store", error=str(e))


def create_redis_store(redis_url: str) -> RedisKeyValueStore:
    """Create a Redis key/value store."""
    return RedisKeyValueStore(redis_url=redis_url)
