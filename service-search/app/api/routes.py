"""API routes for the search service.

``router`` is mounted under ``/api/v1`` and is never edge cached.
``public_router`` serves the anonymous blog reads the edge cache fronts.
"""

import time
from dataclasses import asdict
from typing import Any, Dict, List, Literal, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from edgepress.cache.headers import CachePresets, with_cache_headers
from edgepress.content.base import Content, ContentStoreError, STATUS_DRAFT
from edgepress.search.base import EmbeddingError, SearchBackendError
from edgepress.search.semantic import DEFAULT_SEMANTIC_LIMIT
from edgepress.vector_store.base import VectorStoreError
from ..hybrid.search_manager import SearchManager

logger = structlog.get_logger("search_service.api")

router = APIRouter()
public_router = APIRouter()

MIN_QUERY_LENGTH = 2
MAX_API_LIMIT = 50


class ContentEventRequest(BaseModel):
    """Notification sent by the content write path after a mutation."""
    event: Literal["saved", "deleted"] = Field(..., description="Mutation kind")
    content_id: str = Field(..., description="Content ID")
    slug: Optional[str] = Field(None, description="Slug of deleted content")
    previous_slug: Optional[str] = Field(None, description="Slug before a rename")


def get_search_manager(request: Request) -> SearchManager:
    """Get search manager from application state."""
    return request.app.state.search_manager


def clamp_api_limit(limit: int) -> int:
    return max(1, min(MAX_API_LIMIT, limit))


def _dump(items: List[BaseModel]) -> List[Dict[str, Any]]:
    return [item.model_dump() for item in items]


def _error_payload(error: BaseException) -> Dict[str, Any]:
    if isinstance(error, SearchBackendError):
        code = "search_failed"
    elif isinstance(error, EmbeddingError):
        code = "embedding_failed"
    elif isinstance(error, VectorStoreError):
        code = "vector_store_failed"
    else:
        code = "internal_error"
    return {"results": [], "error": code}


@router.get("/search")
async def search(
    q: str = Query("", description="Search query"),
    limit: int = Query(20, description="Maximum number of results"),
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Full-text search over published content."""
    query = q.strip()
    limit = clamp_api_limit(limit)

    # Gracefully return nothing for very short queries
    if len(query) < MIN_QUERY_LENGTH:
        return with_cache_headers(
            JSONResponse({"results": [], "tooShort": True}),
            CachePresets.api_read(),
        )

    start_time = time.time()
    try:
        results = await search_manager.fulltext.search_cached(query, limit)
    except SearchBackendError as e:
        logger.error("Search failed", query=query, error=str(e))
        return JSONResponse(_error_payload(e), status_code=500)

    logger.info(
        "Search completed",
        query=query,
        results_count=len(results),
        latency_ms=round((time.time() - start_time) * 1000, 2),
    )
    return with_cache_headers(JSONResponse({"results": _dump(results)}), CachePresets.api_read())


@router.get("/search/index")
async def search_index(search_manager: SearchManager = Depends(get_search_manager)):
    """Compact index of published content for client-side search."""
    try:
        items = await search_manager.lexical.build_cached()
    except ContentStoreError as e:
        logger.error("Search index build failed", error=str(e))
        return JSONResponse({"items": [], "count": 0, "error": "search_index_failed"}, status_code=500)

    return with_cache_headers(
        JSONResponse({"items": _dump(items), "count": len(items)}),
        CachePresets.search_index(),
    )


@router.get("/search/semantic")
async def semantic_search(
    q: str = Query("", description="Search query"),
    limit: int = Query(DEFAULT_SEMANTIC_LIMIT, description="Maximum number of results"),
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Nearest-neighbor search over published content."""
    query = q.strip()
    if len(query) < MIN_QUERY_LENGTH:
        return JSONResponse({"results": [], "tooShort": True})

    try:
        results = await search_manager.semantic.search(query, limit)
    except (EmbeddingError, VectorStoreError) as e:
        logger.error("Semantic search failed", query=query, error=str(e))
        return JSONResponse(_error_payload(e), status_code=503)

    return with_cache_headers(JSONResponse({"results": _dump(results)}), CachePresets.api_read())


@router.get("/search/hybrid")
async def hybrid_search(
    q: str = Query("", description="Search query"),
    limit: int = Query(10, description="Maximum number of results per engine"),
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Full-text and semantic results side by side; one engine failing does not hide the other."""
    query = q.strip()
    if len(query) < MIN_QUERY_LENGTH:
        return JSONResponse({"fulltext": {"results": []}, "semantic": {"results": []}, "tooShort": True})

    outcomes = await search_manager.hybrid_search(query, clamp_api_limit(limit))

    body: Dict[str, Any] = {}
    failures = 0
    for engine, outcome in outcomes.items():
        if isinstance(outcome, BaseException):
            failures += 1
            body[engine] = _error_payload(outcome)
        else:
            body[engine] = {"results": _dump(outcome)}

    status_code = 503 if failures == len(outcomes) else 200
    return JSONResponse(body, status_code=status_code)


@router.post("/content/events")
async def content_event(
    request: ContentEventRequest,
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Run cache invalidation and vector upkeep for one content mutation."""
    try:
        content = await search_manager.content_store.get_content_by_id(request.content_id)
    except ContentStoreError as e:
        logger.error("Content lookup failed", content_id=request.content_id, error=str(e))
        return JSONResponse({"error": "database_unavailable"}, status_code=503)

    if request.event == "saved":
        if content is None:
            return JSONResponse({"error": "content_not_found"}, status_code=404)
        report = await search_manager.orchestrator.on_content_saved(content, request.previous_slug)
    else:
        if content is None:
            # Row already gone; id and slug are all the invalidation needs.
            if not request.slug:
                return JSONResponse({"error": "slug_required"}, status_code=422)
            content = Content(id=request.content_id, title="", slug=request.slug, status=STATUS_DRAFT)
        report = await search_manager.orchestrator.on_content_deleted(content)

    return asdict(report)


@public_router.get("/blog")
async def list_posts(
    limit: int = Query(10, description="Page size"),
    offset: int = Query(0, ge=0, description="Page offset"),
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Published posts, most recent first."""
    try:
        posts = await search_manager.reader.get_published_content(clamp_api_limit(limit), offset)
    except ContentStoreError as e:
        logger.error("Listing failed", error=str(e))
        return JSONResponse({"items": [], "error": "database_unavailable"}, status_code=503)

    items = [post.model_dump(exclude={"content_md"}) for post in posts]
    return with_cache_headers(JSONResponse({"items": items, "count": len(items)}), CachePresets.public_page())


@public_router.get("/blog/{slug}")
async def get_post(slug: str, search_manager: SearchManager = Depends(get_search_manager)):
    """One published post by slug."""
    try:
        post = await search_manager.reader.get_content_by_slug(slug)
    except ContentStoreError as e:
        logger.error("Post lookup failed", slug=slug, error=str(e))
        return JSONResponse({"error": "database_unavailable"}, status_code=503)

    if post is None:
        return JSONResponse({"error": "not_found"}, status_code=404, headers={"Cache-Control": CachePresets.no_cache()})
    return with_cache_headers(JSONResponse(post.model_dump()), CachePresets.public_page())
