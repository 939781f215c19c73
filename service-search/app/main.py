"""Search service main application."""

import time
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from edgepress.cache.edge import with_edge_cache_headers
from edgepress.common.config import SearchServiceConfig
from edgepress.common.logging import configure_logging
from .api.routes import public_router, router as api_router
from .hybrid.search_manager import SearchManager
from .runtime.metrics import get_metrics_collector

logger = structlog.get_logger("search_service")

# Operational endpoints are always answered live.
UNCACHED_PATHS = frozenset({"/health", "/metrics"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    config = SearchServiceConfig()
    configure_logging("search-service", config.ep_log_level, config.ep_log_format, env=config.ep_env)

    logger.info("Starting search service")

    app.state.metrics_collector = get_metrics_collector("search-service")
    app.state.search_manager = SearchManager(config, metrics=app.state.metrics_collector)
    await app.state.search_manager.initialize()

    logger.info("Search service started successfully")

    yield

    # Shutdown
    logger.info("Shutting down search service")
    if hasattr(app.state, 'search_manager'):
        await app.state.search_manager.cleanup()
    logger.info("Search service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="EdgePress Search Service",
    description="Lexical, full-text, and semantic search with tag-versioned and edge caching",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")
app.include_router(public_router)


@app.middleware("http")
async def edge_cache_middleware(request: Request, call_next):
    """Serve eligible anonymous GETs from the edge cache and store misses."""
    search_manager = getattr(app.state, "search_manager", None)
    edge_cache = search_manager.edge_cache if search_manager is not None else None
    if edge_cache is None or request.url.path in UNCACHED_PATHS or not edge_cache.can_cache(request):
        return await call_next(request)

    cached = await edge_cache.get(request)
    if cached is not None:
        return with_edge_cache_headers(cached, hit=True)

    response = await call_next(request)
    # Materialize the streamed body so it can be both stored and returned.
    body = b"".join([chunk async for chunk in response.body_iterator])
    materialized = Response(content=body, status_code=response.status_code, headers=response.headers)
    await edge_cache.put(request, materialized)
    return with_edge_cache_headers(materialized, hit=False)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Collect metrics for HTTP requests."""
    start_time = time.time()

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as e:
        logger.error("Unhandled request error", path=request.url.path, error=str(e))
        status_code = 500
        response = JSONResponse(
            status_code=500,
            content={"error": "Internal server error"}
        )

    duration = time.time() - start_time

    # Label by route template so slugs do not explode cardinality
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    if hasattr(app.state, 'metrics_collector'):
        app.state.metrics_collector.record_http_request(
            method=request.method,
            endpoint=endpoint,
            status=status_code,
            duration=duration
        )

    response.headers["X-Process-Time"] = str(duration)
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        if hasattr(app.state, 'search_manager'):
            checks = await app.state.search_manager.health_check()
        else:
            checks = {"content_store": False}

        if checks.get("content_store"):
            return {"status": "healthy", "service": "search-service", "checks": checks}
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": "search-service", "checks": checks}
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": "search-service", "error": str(e)}
        )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    if hasattr(app.state, 'metrics_collector'):
        metrics_data = app.state.metrics_collector.get_metrics()
        return Response(content=metrics_data, media_type="text/plain")
    return Response(content="# No metrics available\n", media_type="text/plain")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "search-service",
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "health": "/health",
            "metrics": "/metrics",
            "search": "/api/v1/search",
            "search_index": "/api/v1/search/index",
            "semantic": "/api/v1/search/semantic",
            "hybrid": "/api/v1/search/hybrid",
            "content_events": "/api/v1/content/events",
            "blog": "/blog",
        }
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=SearchServiceConfig().ep_search_port,
        reload=True,
        log_level="info"
    )
