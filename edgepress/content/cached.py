"""Cache-aside reads of published content.

Listings and post details are cached as untagged keys so the orchestrator can
delete them directly after a publish or unpublish:

- ``posts:published:{limit}:{offset}``: listing pages, 5 minutes
- ``post:{slug}``: one post, 10 minutes
"""

from typing import List, Optional

import structlog

from edgepress.cache.tagged import TagVersionedCache, cache_key
from .base import Content, ContentStore

logger = structlog.get_logger("content.cached")

LISTING_CACHE_TTL = 300
DETAIL_CACHE_TTL = 600

LISTING_KEY_PREFIX = "posts:published"
DETAIL_KEY_PREFIX = "post"


def listing_key(limit: int, offset: int = 0) -> str:
    return cache_key(LISTING_KEY_PREFIX, limit, offset)


def detail_key(slug: str) -> str:
    return cache_key(DETAIL_KEY_PREFIX, slug)


class CachedContentReader:
    """Content store reads fronted by the tag-versioned cache.

    Store errors propagate; cache errors only cost a round trip to the store.
    """

    def __init__(
        self,
        store: ContentStore,
        cache: TagVersionedCache,
        listing_ttl: int = LISTING_CACHE_TTL,
        detail_ttl: int = DETAIL_CACHE_TTL,
    ):
        self.store = store
        self.cache = cache
        self.listing_ttl = listing_ttl
        self.detail_ttl = detail_ttl

    async def get_published_content(self, limit: int = 20, offset: int = 0) -> List[Content]:
        async def load() -> List[Content]:
            return await self.store.get_published_content(limit=limit, offset=offset)

        return await self.cache.get_or_load(
            listing_key(limit, offset),
            load,
            ttl=self.listing_ttl,
            encode=lambda items: [item.model_dump() for item in items],
            decode=lambda raw: [Content.model_validate(item) for item in raw],
        )

    async def get_content_by_slug(self, slug: str) -> Optional[Content]:
        key = detail_key(slug)
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return Content.model_validate(cached)
            except ValueError as e:
                logger.warning("Cached post has unexpected shape", key=key, error=str(e))

        content = await self.store.get_content_by_slug(slug)
        # Misses are not cached; a post published a moment later must show up.
        if content is not None:
            await self.cache.set(key, content.model_dump(), ttl=self.detail_ttl)
        return content
