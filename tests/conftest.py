"""Shared test doubles and fixtures."""

import asyncio
from typing import Dict, List, Optional, Tuple

import pytest
from starlette.requests import Request
from starlette.responses import Response

from edgepress.cache.base import CacheUnavailable, KeyValueStore
from edgepress.cache.edge import EdgeResponseCache, ResponseCacheBackend
from edgepress.cache.tagged import TagVersionedCache
from edgepress.content.base import Content, ContentStore, search_result_from_row, utc_now_iso
from edgepress.search.base import EmbeddingError, SearchBackendError
from edgepress.search.models import SearchResult
from edgepress.search.semantic import EmbeddingProvider, SemanticSearchEngine
from edgepress.vector_store.memory import InMemoryVectorStore

EMBEDDING_DIMENSION = 16


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store that records TTLs and can be switched to failing or hanging."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.fail = False
        self.hang = False
        self.calls: List[Tuple[str, str]] = []

    async def _check(self, op: str, key: str) -> None:
        self.calls.append((op, key))
        if self.hang:
            await asyncio.sleep(10)
        if self.fail:
            raise CacheUnavailable(f"store down during {op}")

    async def get(self, key: str) -> Optional[str]:
        await self._check("get", key)
        return self.data.get(key)

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._check("put", key)
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key: str) -> None:
        await self._check("delete", key)
        self.data.pop(key, None)
        self.ttls.pop(key, None)


class MemoryResponseCache(ResponseCacheBackend):
    """Response store keeping status, headers, and body per URL."""

    def __init__(self):
        self.entries: Dict[str, Tuple[int, List[Tuple[str, str]], bytes]] = {}
        self.fail = False
        self.deleted: List[str] = []

    async def match(self, key: str) -> Optional[Response]:
        if self.fail:
            raise CacheUnavailable("edge store down")
        entry = self.entries.get(key)
        if entry is None:
            return None
        status, headers, body = entry
        return Response(content=body, status_code=status, headers=dict(headers))

    async def put(self, key: str, response: Response) -> None:
        if self.fail:
            raise CacheUnavailable("edge store down")
        self.entries[key] = (response.status_code, list(response.headers.items()), response.body)

    async def delete(self, key: str) -> bool:
        if self.fail:
            raise CacheUnavailable("edge store down")
        self.deleted.append(key)
        return self.entries.pop(key, None) is not None


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words embedding: each word lands in one bucket."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension
        self.fail = False
        self.texts: List[str] = []

    def bucket(self, word: str) -> int:
        return sum(ord(c) for c in word) % self.dimension

    async def embed(self, text: str) -> List[float]:
        self.texts.append(text)
        if self.fail:
            raise EmbeddingError("provider down")
        vector = [0.0] * self.dimension
        for word in text.lower().split():
            vector[self.bucket(word)] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector


class FakeContentStore(ContentStore):
    """In-memory content store with a naive substring full-text search.

    Full-text scores follow the FTS5 convention (lower is more relevant).
    """

    lower_rank_is_better = True

    def __init__(self, contents: Optional[List[Content]] = None):
        self.contents: List[Content] = list(contents or [])
        self.fail = False
        self.full_text_calls: List[Tuple[str, int]] = []
        self.published_calls: List[Tuple[int, int]] = []

    def _published(self) -> List[Content]:
        now = utc_now_iso()
        visible = [c for c in self.contents if c.is_published and c.published_at and c.published_at <= now]
        return sorted(visible, key=lambda c: c.published_at, reverse=True)

    async def get_published_content(self, limit: int = 20, offset: int = 0) -> List[Content]:
        self.published_calls.append((limit, offset))
        return self._published()[offset:offset + limit]

    async def get_content_by_id(self, content_id: str) -> Optional[Content]:
        return next((c for c in self.contents if c.id == content_id), None)

    async def get_content_by_slug(self, slug: str) -> Optional[Content]:
        return next((c for c in self._published() if c.slug == slug), None)

    async def full_text_search(self, match_expression: str, limit: int = 20) -> List[SearchResult]:
        self.full_text_calls.append((match_expression, limit))
        if self.fail:
            raise SearchBackendError("fts backend down")
        tokens = [token.rstrip("*").lower() for token in match_expression.split()]
        rows = []
        for content in self._published():
            text = f"{content.title} {content.content_md}".lower()
            hits = sum(text.count(token) for token in tokens)
            if all(token in text for token in tokens):
                rows.append({
                    "slug": content.slug,
                    "title": content.title,
                    "excerpt": content.excerpt,
                    "published_at": content.published_at,
                    "reading_time": content.reading_time,
                    "tags": "|".join(content.tags),
                    "score": -float(hits),
                    "highlight": None,
                })
        return [search_result_from_row(row) for row in rows[:limit]]

    async def health_check(self) -> bool:
        return not self.fail


def make_content(
    content_id: str,
    title: str,
    slug: Optional[str] = None,
    content_md: str = "",
    excerpt: Optional[str] = None,
    status: str = "published",
    published_at: Optional[str] = "2024-01-01T00:00:00.000Z",
    tags: Optional[List[str]] = None,
    category_id: Optional[str] = None,
) -> Content:
    return Content(
        id=content_id,
        title=title,
        slug=slug or content_id,
        content_md=content_md,
        excerpt=excerpt,
        status=status,
        published_at=published_at,
        tags=tags or [],
        category_id=category_id,
    )



def make_request(path: str = "/blog/hello", method: str = "GET", headers: Optional[Dict[str, str]] = None) -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "root_path": "",
        "query_string": b"",
        "scheme": "http",
        "server": ("testserver", 80),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    return Request(scope)


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def cache(kv_store):
    return TagVersionedCache(kv_store, default_ttl=300, op_timeout=0.2)


@pytest.fixture
def response_backend():
    return MemoryResponseCache()


@pytest.fixture
def edge_cache(response_backend):
    return EdgeResponseCache(response_backend, default_ttl=300, op_timeout=0.2)


@pytest.fixture
def embedding_provider():
    return KeywordEmbeddingProvider()


@pytest.fixture
def vector_store():
    return InMemoryVectorStore(vector_dimension=EMBEDDING_DIMENSION)


@pytest.fixture
def semantic(embedding_provider, vector_store):
    return SemanticSearchEngine(embedding_provider, vector_store, timeout=1.0)


@pytest.fixture
def content_store():
    return FakeContentStore([
        make_content(
            "p1", "TypeScript Guide", content_md="Types for JavaScript developers",
            excerpt="intro", published_at="2024-03-01T00:00:00.000Z", tags=["ts"],
        ),
        make_content(
            "p2", "Rust Notes", content_md="Ownership and borrowing. TypeScript is mentioned once.",
            excerpt="TypeScript mentioned", published_at="2024-02-01T00:00:00.000Z",
        ),
        make_content(
            "p3", "Draft About Python", content_md="Python packaging", status="draft", published_at=None,
        ),
        make_content(
            "p4", "Future Post", content_md="Scheduled TypeScript content",
            published_at="2999-01-01T00:00:00.000Z",
        ),
    ])
