"""Tests for semantic search and the embedding client."""

import asyncio
import json

import httpx
import numpy as np
import pytest
from prometheus_client import CollectorRegistry

from edgepress.common.metrics import MetricsCollector
from edgepress.search.base import EmbeddingError
from edgepress.search.semantic import (
    MAX_EMBEDDING_INPUT_LENGTH,
    EmbeddingProvider,
    HttpEmbeddingProvider,
    SemanticSearchEngine,
    VectorPayload,
    build_embedding_input,
    clamp_limit,
    extract_embedding,
    payload_from_content,
    vector_metadata,
)
from edgepress.vector_store.base import VectorRecord, VectorStoreError
from .conftest import make_content


class EmptyEmbeddingProvider(EmbeddingProvider):
    async def embed(self, text):
        return []


def payload(**overrides):
    fields = dict(title="Rust Notes", slug="rust-notes", content_md="Ownership", status="published")
    fields.update(overrides)
    return VectorPayload(**fields)


def test_clamp_limit():
    assert clamp_limit(999) == 20
    assert clamp_limit(0) == 1
    assert clamp_limit(-3) == 1
    assert clamp_limit(7) == 7


def test_build_embedding_input_skips_empty_sections():
    assert build_embedding_input(payload(excerpt="Short")) == "Rust Notes\n\nShort\n\nOwnership"
    assert build_embedding_input(payload()) == "Rust Notes\n\nOwnership"


def test_build_embedding_input_truncates():
    text = build_embedding_input(payload(content_md="x" * 20000))
    assert len(text) == MAX_EMBEDDING_INPUT_LENGTH
    assert text.startswith("Rust Notes\n\nxxx")


def test_vector_metadata_uses_empty_strings():
    metadata = vector_metadata(payload())
    assert metadata == {
        "status": "published",
        "slug": "rust-notes",
        "title": "Rust Notes",
        "excerpt": "",
        "published_at": "",
        "category_id": "",
    }
    assert all(isinstance(value, str) for value in metadata.values())


def test_payload_from_content():
    content = make_content("p1", "Title", content_md="Body", category_id="c1", status="draft", published_at=None)
    result = payload_from_content(content)
    assert result.status == "draft"
    assert result.category_id == "c1"
    assert result.content_md == "Body"


def test_extract_embedding_formats():
    assert extract_embedding({"vectors": [[1, 2]]}) == [1.0, 2.0]
    assert extract_embedding({"data": [{"embedding": [0.5]}]}) == [0.5]
    with pytest.raises(EmbeddingError):
        extract_embedding({"vectors": []})
    with pytest.raises(EmbeddingError):
        extract_embedding(["not", "a", "dict"])


async def index_fixture_content(semantic):
    await semantic.upsert("p1", payload_from_content(
        make_content("p1", "TypeScript Guide", content_md="Types for JavaScript developers")))
    await semantic.upsert("p2", payload_from_content(
        make_content("p2", "Rust Notes", content_md="Ownership and borrowing in rust")))
    await semantic.upsert("p3", payload_from_content(
        make_content("p3", "Rust Draft", content_md="rust ownership draft", status="draft", published_at=None)))


@pytest.mark.asyncio
async def test_upsert_stores_vector_with_metadata(semantic, vector_store, embedding_provider):
    await semantic.upsert("p1", payload(excerpt="Short", published_at="2024-01-01T00:00:00.000Z"))

    assert await vector_store.count() == 1
    assert embedding_provider.texts == ["Rust Notes\n\nShort\n\nOwnership"]
    matches = await vector_store.query(await embedding_provider.embed("rust"), top_k=1)
    assert matches[0].metadata["published_at"] == "2024-01-01T00:00:00.000Z"


@pytest.mark.asyncio
async def test_search_excludes_drafts(semantic):
    await index_fixture_content(semantic)

    results = await semantic.search("rust ownership", limit=10)

    assert {r.id for r in results} == {"p1", "p2"}
    assert all(r.status == "published" for r in results)
    assert results == sorted(results, key=lambda r: r.score, reverse=True)


@pytest.mark.asyncio
async def test_search_with_drafts(semantic):
    await index_fixture_content(semantic)

    results = await semantic.search("rust ownership", limit=10, include_drafts=True)

    assert {r.id for r in results} == {"p1", "p2", "p3"}


@pytest.mark.asyncio
async def test_search_clamps_top_k(semantic, vector_store):
    seen = {}
    original_query = vector_store.query

    async def spy(vector, top_k=10, filter=None):
        seen["top_k"] = top_k
        seen["filter"] = filter
        return await original_query(vector, top_k=top_k, filter=filter)

    vector_store.query = spy
    await semantic.search("rust", limit=999)

    assert seen == {"top_k": 20, "filter": {"status": "published"}}


@pytest.mark.asyncio
async def test_matches_without_metadata_are_skipped(semantic, vector_store, embedding_provider):
    await semantic.upsert("p2", payload())
    orphan = np.asarray(await embedding_provider.embed("Rust Notes Ownership"), dtype=np.float32)
    vector_store._records["orphan"] = (orphan, {})

    results = await semantic.search("rust notes", include_drafts=True)

    assert [r.id for r in results] == ["p2"]


@pytest.mark.asyncio
async def test_delete_removes_vector(semantic, vector_store):
    await semantic.upsert("p2", payload())
    await semantic.delete("p2")
    assert await vector_store.count() == 0
    assert await semantic.search("rust") == []


@pytest.mark.asyncio
async def test_embedding_errors_propagate(semantic, embedding_provider):
    embedding_provider.fail = True
    with pytest.raises(EmbeddingError):
        await semantic.search("rust")
    with pytest.raises(EmbeddingError):
        await semantic.upsert("p1", payload())


@pytest.mark.asyncio
async def test_empty_embedding_is_an_error(vector_store):
    engine = SemanticSearchEngine(EmptyEmbeddingProvider(), vector_store)
    with pytest.raises(EmbeddingError):
        await engine.generate_embedding("rust")


@pytest.mark.asyncio
async def test_embedding_timeout(vector_store):
    class SlowProvider(EmbeddingProvider):
        async def embed(self, text):
            await asyncio.sleep(5)
            return [1.0]

    engine = SemanticSearchEngine(SlowProvider(), vector_store, timeout=0.05)
    with pytest.raises(EmbeddingError):
        await engine.search("rust")


@pytest.mark.asyncio
async def test_vector_store_errors_propagate_and_are_counted(embedding_provider, vector_store):
    metrics = MetricsCollector("test", registry=CollectorRegistry())
    engine = SemanticSearchEngine(embedding_provider, vector_store, timeout=1.0, metrics=metrics)

    async def broken_query(vector, top_k=10, filter=None):
        raise VectorStoreError("vector store down")

    vector_store.query = broken_query
    with pytest.raises(VectorStoreError):
        await engine.search("rust")

    output = metrics.get_metrics()
    assert 'ep_vector_store_operations_total{operation="query",outcome="error"} 1.0' in output
    assert 'ep_search_requests_total{engine="semantic",outcome="error"} 1.0' in output


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_http_provider_posts_items_and_model():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"vectors": [[0.1, 0.2, 0.3]]})

    provider = HttpEmbeddingProvider("http://embedding:9006/", model="test-model", client=mock_client(handler))
    vector = await provider.embed("hello")

    assert vector == [0.1, 0.2, 0.3]
    assert str(requests[0].url) == "http://embedding:9006/api/v1/embed"
    assert json.loads(requests[0].content) == {"items": [{"text": "hello"}], "model": "test-model"}
    await provider.close()


@pytest.mark.asyncio
async def test_http_provider_retries_server_errors():
    statuses = [503, 200]

    def handler(request):
        status = statuses.pop(0)
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json={"data": [{"embedding": [1.0]}]})

    provider = HttpEmbeddingProvider(
        "http://embedding", retry_attempts=2, retry_base_delay=0, client=mock_client(handler)
    )
    assert await provider.embed("hello") == [1.0]
    assert statuses == []


@pytest.mark.asyncio
async def test_http_provider_gives_up_after_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502)

    provider = HttpEmbeddingProvider(
        "http://embedding", retry_attempts=3, retry_base_delay=0, client=mock_client(handler)
    )
    with pytest.raises(EmbeddingError):
        await provider.embed("hello")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_http_provider_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": "bad input"})

    provider = HttpEmbeddingProvider("http://embedding", retry_base_delay=0, client=mock_client(handler))
    with pytest.raises(EmbeddingError):
        await provider.embed("hello")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_matches_with_partial_metadata_are_skipped(semantic, vector_store, embedding_provider):
    await semantic.upsert("p2", payload(title="hello world"))
    await vector_store.upsert([
        VectorRecord(id="partial", values=await embedding_provider.embed("hello world"), metadata={"status": "published"}),
    ])

    results = await semantic.search("hello world")

    assert [r.id for r in results] == ["p2"]
