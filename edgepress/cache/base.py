"""Base key/value store interface.

Defines the small contract the tag-versioned cache depends on, independent of
the backing implementation (Redis, Workers KV, memcached, ...).
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """Abstract base class for string key/value stores with per-key TTL.

    Implementations raise ``CacheUnavailable`` for transport failures so the
    cache layer can treat every backend the same way.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored string, or ``None`` when the key is absent."""
        pass

    @abstractmethod
    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store ``value`` under ``key``; ``ttl`` is in seconds, ``None`` means no expiry."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class CacheUnavailable(Exception):
    """KV or edge store unreachable, timed out, or returned an unparseable payload."""
    pass
