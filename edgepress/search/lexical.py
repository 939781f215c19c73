"""Lexical search: index builder and client-side token scorer.

The index is a compact list of published items served to clients, which rank
it locally with ``local_search`` (no backend round trip per keystroke). The
scorer is pure and deterministic; the builder is cached under tag ``search``
so one invalidation refreshes it after any publish.

Scoring
- Query is lowercased and split on whitespace; tokens of length <= 1 are dropped
- Per token: title substring +4, excerpt substring +2, any tag substring +3
- Repeated tokens score again; zero-score items are excluded
- Ordered by score desc, then ``published_at`` desc (ISO-8601 sorts as text)
"""

import time
from typing import List, Optional, Sequence

from edgepress.cache.tagged import TagVersionedCache, cache_key
from edgepress.common.logging import log_performance
from edgepress.content.base import ContentStore, search_item_from_content
from .models import SearchIndexItem, SearchResult

SEARCH_TAG = "search"
SEARCH_INDEX_TTL = 900  # 15 minutes
DEFAULT_INDEX_LIMIT = 500
DEFAULT_RESULT_LIMIT = 20

TITLE_WEIGHT = 4
EXCERPT_WEIGHT = 2
TAG_WEIGHT = 3


def tokenize_query(query: str) -> List[str]:
    return [token for token in query.strip().lower().split() if len(token) > 1]


def score_item(tokens: Sequence[str], item: SearchIndexItem) -> int:
    """Sum per-token substring hits over title, excerpt, and tags."""
    title = item.title.lower()
    excerpt = (item.excerpt or "").lower()
    tags = [tag.lower() for tag in item.tags]

    score = 0
    for token in tokens:
        if token in title:
            score += TITLE_WEIGHT
        if token in excerpt:
            score += EXCERPT_WEIGHT
        if any(token in tag for tag in tags):
            score += TAG_WEIGHT
    return score


def local_search(
    query: str,
    items: Sequence[SearchIndexItem],
    limit: int = DEFAULT_RESULT_LIMIT,
) -> List[SearchResult]:
    """Rank ``items`` against ``query`` without any I/O.

    Parameters
    - query: Free text typed by the user
    - items: Search index as returned by ``LexicalIndexBuilder``
    - limit: Maximum number of results

    Returns
    - Matching items with ``score`` and ``highlight`` (the excerpt) set
    """
    tokens = tokenize_query(query)
    if not tokens:
        return []

    scored: List[SearchResult] = []
    for item in items:
        score = score_item(tokens, item)
        if score > 0:
            fields = item.model_dump()
            fields.update(score=score, highlight=item.excerpt)
            scored.append(SearchResult(**fields))

    # Two stable passes: secondary key first, then primary.
    scored.sort(key=lambda result: result.published_at, reverse=True)
    scored.sort(key=lambda result: result.score, reverse=True)
    return scored[:limit]


class LexicalIndexBuilder:
    """Builds the lexical search index from published content.

    Parameters
    - content_store: Source of published content
    - cache: Optional ``TagVersionedCache``; ``build_cached`` falls back to
      ``build`` when absent
    - ttl: Cache lifetime of the built index in seconds
    """

    def __init__(
        self,
        content_store: ContentStore,
        cache: Optional[TagVersionedCache] = None,
        ttl: int = SEARCH_INDEX_TTL,
    ):
        self.content_store = content_store
        self.cache = cache
        self.ttl = ttl

    async def build(self, limit: int = DEFAULT_INDEX_LIMIT) -> List[SearchIndexItem]:
        """Fetch published, non-future content in store order (most recent first)."""
        start_time = time.time()
        contents = await self.content_store.get_published_content(limit=limit, offset=0)
        items = [search_item_from_content(content) for content in contents]
        log_performance(
            "search_index_build",
            round((time.time() - start_time) * 1000, 2),
            items=len(items),
            limit=limit,
        )
        return items

    async def build_cached(self, limit: int = DEFAULT_INDEX_LIMIT) -> List[SearchIndexItem]:
        if self.cache is None:
            return await self.build(limit)

        return await self.cache.get_or_load(
            cache_key("search:index", limit),
            lambda: self.build(limit),
            ttl=self.ttl,
            tag=SEARCH_TAG,
            encode=lambda items: [item.model_dump() for item in items],
            decode=lambda raw: [SearchIndexItem.model_validate(item) for item in raw],
        )
