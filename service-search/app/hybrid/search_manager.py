"""Search manager: wires the retrieval and caching core for the service.

Owns one instance of every component and exposes the operations the API
layer needs. Hybrid search runs full-text and semantic search concurrently;
each engine fails on its own and its error is reported next to the other
engine's results rather than suppressing them.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import structlog

from edgepress.cache.base import KeyValueStore
from edgepress.cache.edge import EdgeResponseCache, RedisResponseCache, ResponseCacheBackend
from edgepress.cache.orchestrator import CacheOrchestrator
from edgepress.cache.redis_store import RedisKeyValueStore, create_redis_store
from edgepress.cache.tagged import TagVersionedCache
from edgepress.common.config import SearchServiceConfig
from edgepress.common.metrics import MetricsCollector
from edgepress.content import CachedContentReader, ContentStore, create_content_store
from edgepress.search.fulltext import FullTextSearchEngine
from edgepress.search.lexical import LexicalIndexBuilder
from edgepress.search.semantic import EmbeddingProvider, HttpEmbeddingProvider, SemanticSearchEngine
from edgepress.vector_store.base import VectorStore
from edgepress.vector_store.factory import create_vector_store_from_config

logger = structlog.get_logger("search_service.search_manager")


class SearchManager:
    """Builds and holds the cache, content, and search components.

    Parameters
    - config: ``SearchServiceConfig`` providing URLs, TTLs, and timeouts
    - metrics: Collector shared by all components
    - kv_store / response_backend / content_store / vector_store /
      embedding_provider: Optional overrides; defaults come from ``config``

    Notes
    - Construction performs no I/O; ``initialize`` prepares the content store.
    """

    def __init__(
        self,
        config: SearchServiceConfig,
        metrics: Optional[MetricsCollector] = None,
        kv_store: Optional[KeyValueStore] = None,
        response_backend: Optional[ResponseCacheBackend] = None,
        content_store: Optional[ContentStore] = None,
        vector_store: Optional[VectorStore] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ):
        self.config = config
        self.metrics = metrics

        self.kv_store = kv_store or create_redis_store(config.ep_redis_url)
        self.cache = TagVersionedCache(
            self.kv_store,
            default_ttl=config.ep_default_cache_ttl,
            op_timeout=config.ep_cache_timeout,
            metrics=metrics,
        )

        self.edge_cache: Optional[EdgeResponseCache] = None
        if config.ep_edge_cache_enabled:
            self.edge_cache = EdgeResponseCache(
                response_backend or RedisResponseCache(config.ep_redis_url),
                default_ttl=config.ep_edge_cache_ttl,
                op_timeout=config.ep_cache_timeout,
                metrics=metrics,
            )

        self.content_store = content_store or create_content_store(config)
        self.reader = CachedContentReader(
            self.content_store,
            self.cache,
            listing_ttl=config.ep_listing_cache_ttl,
            detail_ttl=config.ep_detail_cache_ttl,
        )
        self.lexical = LexicalIndexBuilder(self.content_store, self.cache, ttl=config.ep_search_index_ttl)
        self.fulltext = FullTextSearchEngine(
            self.content_store,
            self.cache,
            ttl=config.ep_fulltext_cache_ttl,
            timeout=config.ep_search_timeout,
            metrics=metrics,
        )

        self.semantic = SemanticSearchEngine(
            embedding_provider or HttpEmbeddingProvider(
                config.ep_embedding_service_url,
                model=config.ep_embedding_model,
                timeout=config.ep_embedding_timeout,
            ),
            vector_store or create_vector_store_from_config(config),
            timeout=config.ep_embedding_timeout,
            vector_timeout=config.ep_vector_timeout,
            metrics=metrics,
        )

        self.orchestrator = CacheOrchestrator(
            self.cache,
            edge_cache=self.edge_cache,
            semantic=self.semantic,
            public_origin=config.ep_public_origin,
            path_template=config.ep_public_path_template,
            metrics=metrics,
        )

    async def initialize(self) -> None:
        await self.content_store.initialize()
        logger.info(
            "Search manager initialized",
            content_backend=self.config.ep_content_backend,
            vector_backend=self.config.ep_vector_backend,
            edge_cache=self.edge_cache is not None,
        )

    async def hybrid_search(self, query: str, limit: int = 10) -> Dict[str, Any]:
        """Run full-text and semantic search side by side.

        Returns a mapping ``engine -> list of results | Exception``.
        """
        start_time = time.time()
        outcomes = await asyncio.gather(
            self.fulltext.search_cached(query, limit),
            self.semantic.search(query, limit),
            return_exceptions=True,
        )
        results = dict(zip(("fulltext", "semantic"), outcomes))

        for engine, outcome in results.items():
            if isinstance(outcome, BaseException):
                logger.warning("Hybrid search engine failed", engine=engine, error=str(outcome) or type(outcome).__name__)

        logger.info(
            "Hybrid search completed",
            query=query[:50],
            latency_ms=round((time.time() - start_time) * 1000, 2),
        )
        return results

    async def health_check(self) -> Dict[str, bool]:
        """Per-dependency health. Only the content store is required."""
        checks = {"content_store": await self.content_store.health_check()}
        if isinstance(self.kv_store, RedisKeyValueStore):
            checks["cache"] = await self.kv_store.ping()
        try:
            checks["vector_store"] = await self.semantic.vector_store.health_check()
        except Exception as e:
            logger.warning("Vector store health check failed", error=str(e))
            checks["vector_store"] = False
        return checks

    async def cleanup(self) -> None:
        """Release connections held by every component."""
        closers: List[Any] = [
            self.content_store.close(),
            self.semantic.vector_store.close(),
            self.semantic.provider.close(),
            self.kv_store.close(),
        ]
        if self.edge_cache is not None and hasattr(self.edge_cache.backend, "close"):
            closers.append(self.edge_cache.backend.close())

        for outcome in await asyncio.gather(*closers, return_exceptions=True):
            if isinstance(outcome, Exception):
                logger.warning("Cleanup step failed", error=str(outcome))
        logger.info("Search manager cleaned up")
