"""Invalidation orchestrator for content mutations.

Called by the content write path after a post is published, updated,
unpublished, or deleted. Steps run strictly in order:

1. Invalidate tag ``search`` (lexical index; full-text per-query entries
   expire on their short TTL instead)
2. Delete the post detail key and the fixed listing keys
3. Purge the edge-cached public URL of the post
4. Best-effort vector upsert (save) or delete (delete)

Steps 1-3 are unconditional and never raise (the caches are fail-open). Step
4 may fail; the failure is logged and reported, and never blocks the
mutation. Concurrent runs are not ordered against each other.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog

from edgepress.common.metrics import MetricsCollector
from edgepress.content.base import Content
from edgepress.content.cached import detail_key, listing_key
from edgepress.search.lexical import SEARCH_TAG
from edgepress.search.semantic import SemanticSearchEngine, payload_from_content
from .edge import EdgeResponseCache
from .tagged import TagVersionedCache

logger = structlog.get_logger("cache.orchestrator")

# Landing page and default listing page.
DEFAULT_LISTING_KEYS = (listing_key(10, 0), listing_key(20, 0))
DEFAULT_PATH_TEMPLATE = "/blog/{slug}"

VECTOR_UPSERTED = "upserted"
VECTOR_DELETED = "deleted"
VECTOR_FAILED = "failed"
VECTOR_SKIPPED = "skipped"


@dataclass
class InvalidationReport:
    """What one orchestrator run did."""
    event: str
    content_id: str
    search_version: Optional[int] = None
    deleted_keys: List[str] = field(default_factory=list)
    purged_urls: List[str] = field(default_factory=list)
    vector: str = VECTOR_SKIPPED
    vector_error: Optional[str] = None


class CacheOrchestrator:
    """Sequences cache invalidation and vector index upkeep after mutations.

    Parameters
    - cache: Tag-versioned KV cache
    - edge_cache: Optional edge response cache to purge
    - semantic: Optional semantic engine; without it step 4 is skipped
    - public_origin: Origin of public URLs, e.g. ``https://blog.example.com``
    - path_template: Public path of a post, formatted with ``slug``
    - listing_keys: Untagged listing keys deleted on every mutation
    - metrics: Optional collector for invalidation counters
    """

    def __init__(
        self,
        cache: TagVersionedCache,
        edge_cache: Optional[EdgeResponseCache] = None,
        semantic: Optional[SemanticSearchEngine] = None,
        public_origin: str = "http://localhost",
        path_template: str = DEFAULT_PATH_TEMPLATE,
        listing_keys: Sequence[str] = DEFAULT_LISTING_KEYS,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.cache = cache
        self.edge_cache = edge_cache
        self.semantic = semantic
        self.public_origin = public_origin.rstrip("/")
        self.path_template = path_template
        self.listing_keys = list(listing_keys)
        self.metrics = metrics

    def public_url(self, slug: str) -> str:
        return self.public_origin + self.path_template.format(slug=slug)

    async def on_content_saved(
        self,
        content: Content,
        previous_slug: Optional[str] = None,
    ) -> InvalidationReport:
        """Run after publish, update, or unpublish.

        ``previous_slug`` is purged too when a save renamed the post. Drafts
        are upserted with their status, so the published-only filter keeps
        them out of search results.
        """
        report = await self._purge_caches("saved", content, previous_slug)

        if self.semantic is not None:
            try:
                await self.semantic.upsert(content.id, payload_from_content(content))
                report.vector = VECTOR_UPSERTED
            except Exception as e:
                report.vector = VECTOR_FAILED
                report.vector_error = str(e) or type(e).__name__
                logger.error(
                    "Vector upsert failed, continuing",
                    content_id=content.id,
                    error=report.vector_error,
                )

        self._log(report)
        return report

    async def on_content_deleted(self, content: Content) -> InvalidationReport:
        """Run after a post is deleted; removes its vector so no match can dangle."""
        report = await self._purge_caches("deleted", content, None)

        if self.semantic is not None:
            try:
                await self.semantic.delete(content.id)
                report.vector = VECTOR_DELETED
            except Exception as e:
                report.vector = VECTOR_FAILED
                report.vector_error = str(e) or type(e).__name__
                logger.error(
                    "Vector delete failed, continuing",
                    content_id=content.id,
                    error=report.vector_error,
                )

        self._log(report)
        return report

    async def _purge_caches(
        self,
        event: str,
        content: Content,
        previous_slug: Optional[str],
    ) -> InvalidationReport:
        report = InvalidationReport(event=event, content_id=content.id)
        slugs = [content.slug]
        if previous_slug and previous_slug != content.slug:
            slugs.append(previous_slug)

        # 1. Tag version bump
        report.search_version = await self.cache.invalidate(SEARCH_TAG)

        # 2. Detail and listing keys
        for key in [detail_key(slug) for slug in slugs] + self.listing_keys:
            await self.cache.delete(key)
            report.deleted_keys.append(key)

        # 3. Edge purge
        if self.edge_cache is not None:
            for slug in slugs:
                url = self.public_url(slug)
                await self.edge_cache.delete(url)
                report.purged_urls.append(url)

        if self.metrics is not None:
            self.metrics.record_invalidation(event)
        return report

    def _log(self, report: InvalidationReport) -> None:
        logger.info(
            "Content caches invalidated",
            mutation=report.event,
            content_id=report.content_id,
            search_version=report.search_version,
            deleted_keys=len(report.deleted_keys),
            purged_urls=report.purged_urls,
            vector=report.vector,
        )
