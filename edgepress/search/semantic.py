"""Semantic search: embeddings plus nearest-neighbor vector queries.

Each published post is embedded from its title, excerpt, and body and stored
with string metadata so results can be rendered without a content store round
trip. Queries are embedded with the same model and matched by cosine
similarity, filtered to ``status=published`` unless drafts are requested.

Failure policy
- This path has no fallback data source: provider and vector store errors,
  including timeouts, propagate as ``EmbeddingError`` / ``VectorStoreError``
- Matches with missing or partial metadata are skipped (stale prior write)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel

from edgepress.common.metrics import MetricsCollector
from edgepress.content.base import Content
from edgepress.vector_store.base import VectorRecord, VectorStore, VectorStoreQueryError
from .base import EmbeddingError
from .models import SemanticSearchResult

logger = structlog.get_logger("search.semantic")

EMBEDDING_MODEL = "BAAI/bge-base-en-v1.5"
# Characters, not tokens.
MAX_EMBEDDING_INPUT_LENGTH = 12000
MAX_SEARCH_RESULTS = 20
DEFAULT_SEMANTIC_LIMIT = 5


class VectorPayload(BaseModel):
    """Content fields needed to embed a post and describe its vector."""
    title: str
    slug: str
    content_md: str = ""
    excerpt: Optional[str] = None
    status: str
    published_at: Optional[str] = None
    category_id: Optional[str] = None


def payload_from_content(content: Content) -> VectorPayload:
    return VectorPayload(
        title=content.title,
        slug=content.slug,
        content_md=content.content_md,
        excerpt=content.excerpt,
        status=content.status,
        published_at=content.published_at,
        category_id=content.category_id,
    )


def build_embedding_input(payload: VectorPayload) -> str:
    """Join title, excerpt, and body with blank lines, truncated to ``MAX_EMBEDDING_INPUT_LENGTH``."""
    sections = [payload.title, payload.excerpt or "", payload.content_md]
    raw = "\n\n".join(section for section in sections if section)
    return raw[:MAX_EMBEDDING_INPUT_LENGTH]


def vector_metadata(payload: VectorPayload) -> Dict[str, str]:
    """Metadata stored beside the vector; absent values become ``""``."""
    return {
        "status": payload.status,
        "slug": payload.slug,
        "title": payload.title,
        "excerpt": payload.excerpt or "",
        "published_at": payload.published_at or "",
        "category_id": payload.category_id or "",
    }


def clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_SEARCH_RESULTS))


class EmbeddingProvider(ABC):
    """Turns text into a dense vector."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return the embedding for ``text``; raise ``EmbeddingError`` on failure."""
        pass

    async def close(self) -> None:
        return None


def extract_embedding(data: Any) -> List[float]:
    """Pull the first vector out of an embedding response body.

    Accepts ``{"vectors": [[...]]}`` and ``{"data": [{"embedding": [...]}]}``.
    """
    if isinstance(data, dict):
        vectors = data.get("vectors")
        if isinstance(vectors, list) and vectors and vectors[0]:
            return [float(v) for v in vectors[0]]
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            embedding = items[0].get("embedding")
            if embedding:
                return [float(v) for v in embedding]
    raise EmbeddingError("Embedding response missing data")


class HttpEmbeddingProvider(EmbeddingProvider):
    """Client for an embedding service exposing ``POST /api/v1/embed``.

    Parameters
    - base_url: Service root, e.g. ``http://embedding:9006``
    - model: Model identifier sent with every request
    - timeout: Per-request HTTP timeout in seconds
    - retry_attempts: Attempts for transport errors and 5xx responses
    - retry_base_delay: First backoff delay in seconds, doubled per attempt
    - client: Optional preconfigured ``httpx.AsyncClient``
    """

    def __init__(
        self,
        base_url: str,
        model: str = EMBEDDING_MODEL,
        timeout: float = 10.0,
        retry_attempts: int = 2,
        retry_base_delay: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.retry_attempts = max(1, retry_attempts)
        self.retry_base_delay = retry_base_delay
        self.http_client = client or httpx.AsyncClient(timeout=timeout)

    async def _post(self, text: str) -> httpx.Response:
        response = await self.http_client.post(
            f"{self.base_url}/api/v1/embed",
            json={"items": [{"text": text}], "model": self.model},
        )
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    async def embed(self, text: str) -> List[float]:
        response = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                response = await self._post(text)
                break
            except httpx.HTTPError as e:
                if attempt == self.retry_attempts:
                    logger.error("Embedding service call failed", attempts=attempt, error=str(e))
                    raise EmbeddingError(f"Embedding service unavailable: {e}") from e
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Embedding service call failed, retrying",
                    attempt=attempt,
                    max_attempts=self.retry_attempts,
                    delay_seconds=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

        if response.status_code != 200:
            raise EmbeddingError(f"Embedding service returned status {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingError("Embedding response was not JSON") from e
        return extract_embedding(data)

    async def close(self) -> None:
        await self.http_client.aclose()


class SemanticSearchEngine:
    """Embedding generation and vector search over content.

    Parameters
    - provider: ``EmbeddingProvider`` used for documents and queries
    - vector_store: ``VectorStore`` holding one vector per content id
    - timeout: Upper bound in seconds for one embedding call
    - vector_timeout: Upper bound for one vector store call (defaults to ``timeout``)
    - metrics: Optional collector for search and vector store counters
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        vector_store: VectorStore,
        timeout: Optional[float] = 10.0,
        vector_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.provider = provider
        self.vector_store = vector_store
        self.timeout = timeout
        self.vector_timeout = vector_timeout if vector_timeout is not None else timeout
        self.metrics = metrics

    @staticmethod
    async def _bounded(operation: Awaitable[Any], timeout: Optional[float]) -> Any:
        if timeout is None:
            return await operation
        return await asyncio.wait_for(operation, timeout=timeout)

    async def generate_embedding(self, text: str) -> List[float]:
        try:
            vector = await self._bounded(self.provider.embed(text), self.timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding timed out after {self.timeout}s") from e
        if not vector:
            raise EmbeddingError("Embedding response missing data")
        return list(vector)

    async def _vector_call(self, operation_name: str, operation: Awaitable[Any]) -> Any:
        try:
            result = await self._bounded(operation, self.vector_timeout)
        except asyncio.TimeoutError as e:
            self._record_vector(operation_name, "timeout")
            raise VectorStoreQueryError(
                f"Vector {operation_name} timed out after {self.vector_timeout}s"
            ) from e
        except Exception:
            self._record_vector(operation_name, "error")
            raise
        self._record_vector(operation_name, "ok")
        return result

    async def upsert(self, content_id: str, payload: VectorPayload) -> None:
        """Embed ``payload`` and store it under ``content_id``."""
        vector = await self.generate_embedding(build_embedding_input(payload))
        record = VectorRecord(id=content_id, values=vector, metadata=vector_metadata(payload))
        await self._vector_call("upsert", self.vector_store.upsert([record]))
        logger.info("Content vector upserted", content_id=content_id, status=payload.status)

    async def delete(self, content_id: str) -> None:
        await self._vector_call("delete", self.vector_store.delete_by_ids([content_id]))
        logger.info("Content vector deleted", content_id=content_id)

    async def search(
        self,
        query: str,
        limit: int = DEFAULT_SEMANTIC_LIMIT,
        include_drafts: bool = False,
    ) -> List[SemanticSearchResult]:
        """Nearest published content for ``query``; drafts only when asked."""
        top_k = clamp_limit(limit)
        start_time = time.time()
        try:
            vector = await self.generate_embedding(query)
            matches = await self._vector_call(
                "query",
                self.vector_store.query(
                    vector,
                    top_k=top_k,
                    filter=None if include_drafts else {"status": "published"},
                ),
            )
        except Exception:
            self._record_search(start_time, "error")
            raise

        results = []
        for match in matches:
            if not match.metadata:
                logger.debug("Skipping vector match without metadata", id=match.id)
                continue
            fields = {key: str(value) for key, value in match.metadata.items()}
            fields.update(id=match.id, score=match.score)
            try:
                results.append(SemanticSearchResult(**fields))
            except ValueError as e:
                logger.debug("Skipping vector match with partial metadata", id=match.id, error=str(e))

        self._record_search(start_time, "ok")
        return results

    def _record_search(self, start_time: float, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_search("semantic", time.time() - start_time, outcome=outcome)

    def _record_vector(self, operation: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_vector_store_operation(operation, outcome)
