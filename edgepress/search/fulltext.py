"""Server-side full-text search over the content store's text index.

Query handling
- Whitespace-split, quote characters stripped, empty tokens dropped
- Each token becomes a prefix match; tokens are ANDed
- No tokens means no query: ``[]`` is returned without touching the backend

Rank order
- Each store declares its ranking convention via ``lower_rank_is_better``.
  FTS5 ``bm25()`` is ascending (lower is more relevant) and must be sorted
  ascending; sorting it "higher is better" silently inverts the results.

Errors from the backend (including timeouts) surface as ``SearchBackendError``
and are never turned into an empty result.
"""

import asyncio
import time
from typing import List, Optional

import structlog

from edgepress.cache.tagged import TagVersionedCache, cache_key
from edgepress.content.base import ContentStore, build_match_expression as fts5_match_expression
from edgepress.common.metrics import MetricsCollector
from .base import SearchBackendError
from .models import SearchResult

logger = structlog.get_logger("search.fulltext")

FULLTEXT_CACHE_TTL = 120  # short: refresh quickly after edits
CACHED_QUERY_MAX_LENGTH = 64
DEFAULT_LIMIT = 20

_QUOTE_CHARS = "\"'"


def normalize_tokens(query: str) -> List[str]:
    tokens = (token.translate({ord(c): None for c in _QUOTE_CHARS}) for token in query.split())
    return [token for token in tokens if token]


def build_match_expression(query: str) -> str:
    """FTS5 match expression for ``query`` (``tok1* tok2*``), or ``""`` if it has no tokens."""
    return fts5_match_expression(normalize_tokens(query))


def normalize_cached_query(query: str) -> str:
    return query.strip().lower()[:CACHED_QUERY_MAX_LENGTH]


def sort_by_rank(results: List[SearchResult], lower_is_better: bool) -> List[SearchResult]:
    """Stable sort on the backend score; rows without a score keep their place at the end."""
    scored = [r for r in results if r.score is not None]
    unscored = [r for r in results if r.score is None]
    scored.sort(key=lambda r: r.score, reverse=not lower_is_better)
    return scored + unscored


class FullTextSearchEngine:
    """Ranked text search, optionally fronted by the KV cache.

    Parameters
    - content_store: Store exposing ``full_text_search`` and a rank convention
    - cache: Optional ``TagVersionedCache`` for ``search_cached``
    - ttl: Lifetime of cached result lists in seconds
    - timeout: Upper bound in seconds for one backend query
    - metrics: Optional collector for search counters
    """

    def __init__(
        self,
        content_store: ContentStore,
        cache: Optional[TagVersionedCache] = None,
        ttl: int = FULLTEXT_CACHE_TTL,
        timeout: Optional[float] = 5.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.content_store = content_store
        self.cache = cache
        self.ttl = ttl
        self.timeout = timeout
        self.metrics = metrics

    async def search(self, query: str, limit: int = DEFAULT_LIMIT) -> List[SearchResult]:
        tokens = normalize_tokens(query)
        if not tokens:
            return []

        match = self.content_store.match_expression(tokens)
        start_time = time.time()
        try:
            operation = self.content_store.full_text_search(match, limit)
            if self.timeout is not None:
                rows = await asyncio.wait_for(operation, timeout=self.timeout)
            else:
                rows = await operation
        except asyncio.TimeoutError as e:
            self._record(start_time, "timeout")
            logger.error("Full-text search timed out", match=match, timeout=self.timeout)
            raise SearchBackendError(f"Full-text search timed out after {self.timeout}s") from e
        except SearchBackendError:
            self._record(start_time, "error")
            raise

        self._record(start_time, "ok")
        results = sort_by_rank(rows, self.content_store.lower_rank_is_better)
        logger.debug("Full-text search completed", match=match, results=len(results))
        return results[:limit]

    async def search_cached(self, query: str, limit: int = DEFAULT_LIMIT) -> List[SearchResult]:
        """``search`` on the normalized query, cached for a short TTL.

        The key is untagged; cached lists are allowed to be up to ``ttl``
        seconds stale after an edit.
        """
        normalized = normalize_cached_query(query)
        if not normalized:
            return []
        if self.cache is None:
            return await self.search(normalized, limit)

        return await self.cache.get_or_load(
            cache_key("search:fts", limit, normalized),
            lambda: self.search(normalized, limit),
            ttl=self.ttl,
            encode=lambda results: [result.model_dump() for result in results],
            decode=lambda raw: [SearchResult.model_validate(item) for item in raw],
        )

    def _record(self, start_time: float, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_search("fulltext", time.time() - start_time, outcome=outcome)
