#!/usr/bin/env python3
"""Re-embed all published content into the vector store.

Walks published content in pages, upserting one vector per post. Use after
changing the embedding model or when the vector store was rebuilt. Per-post
failures are logged and counted; the run continues.
"""

import argparse
import asyncio
import sys
from typing import Optional

import structlog

from edgepress.cache.redis_store import create_redis_store
from edgepress.cache.tagged import TagVersionedCache
from edgepress.common.config import ReindexConfig
from edgepress.common.logging import configure_logging
from edgepress.content import ContentStore, create_content_store
from edgepress.search.lexical import SEARCH_TAG
from edgepress.search.semantic import HttpEmbeddingProvider, SemanticSearchEngine, payload_from_content
from edgepress.vector_store.factory import create_vector_store_from_config

logger = structlog.get_logger("reindex_all")


async def reindex_content(
    content_store: ContentStore,
    semantic: SemanticSearchEngine,
    batch_size: int = 50,
    limit: Optional[int] = None,
) -> dict:
    """Upsert vectors for every published post.

    Returns
    - Counts of ``indexed`` and ``failed`` posts
    """
    indexed = 0
    failed = 0
    offset = 0

    while limit is None or offset < limit:
        page_size = batch_size if limit is None else min(batch_size, limit - offset)
        batch = await content_store.get_published_content(limit=page_size, offset=offset)
        if not batch:
            break

        for content in batch:
            try:
                await semantic.upsert(content.id, payload_from_content(content))
                indexed += 1
            except Exception as e:
                failed += 1
                logger.error("Failed to reindex content", content_id=content.id, slug=content.slug, error=str(e))

        offset += len(batch)
        logger.info("Reindex batch completed", offset=offset, indexed=indexed, failed=failed)
        if len(batch) < page_size:
            break

    return {"indexed": indexed, "failed": failed}


async def run(config: ReindexConfig, batch_size: int, limit: Optional[int], invalidate: bool) -> dict:
    content_store = create_content_store(config)
    vector_store = create_vector_store_from_config(config)
    provider = HttpEmbeddingProvider(
        config.ep_embedding_service_url,
        model=config.ep_embedding_model,
        timeout=config.ep_embedding_timeout,
    )
    semantic = SemanticSearchEngine(
        provider,
        vector_store,
        timeout=config.ep_embedding_timeout,
        vector_timeout=config.ep_vector_timeout,
    )

    try:
        await content_store.initialize()
        stats = await reindex_content(content_store, semantic, batch_size=batch_size, limit=limit)

        if invalidate:
            kv_store = create_redis_store(config.ep_redis_url)
            try:
                cache = TagVersionedCache(kv_store, op_timeout=config.ep_cache_timeout)
                stats["search_version"] = await cache.invalidate(SEARCH_TAG)
            finally:
                await kv_store.close()
        return stats
    finally:
        await provider.close()
        await vector_store.close()
        await content_store.close()


def main():
    """Main function for CLI."""
    parser = argparse.ArgumentParser(description="Re-embed all published content")
    parser.add_argument("--batch-size", type=int, default=None, help="Posts per page (default from config)")
    parser.add_argument("--limit", type=int, default=None, help="Stop after this many posts")
    parser.add_argument("--invalidate", action="store_true", help="Bump the search cache tag afterwards")

    args = parser.parse_args()

    config = ReindexConfig()
    configure_logging("reindex_all", config.ep_log_level, config.ep_log_format)

    stats = asyncio.run(run(
        config,
        batch_size=args.batch_size or config.ep_reindex_batch_size,
        limit=args.limit,
        invalidate=args.invalidate,
    ))

    print(f"Reindexed {stats['indexed']} posts ({stats['failed']} failed)")
    sys.exit(1 if stats["failed"] else 0)


if __name__ == "__main__":
    main()
