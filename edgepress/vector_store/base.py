"""Base vector store interface.

Defines the contract the semantic search engine depends on, independent of
the backing implementation (pgvector, in-process, etc.).

Semantics
- ``upsert`` is idempotent per id: the latest vector and metadata win
- ``query`` returns matches by descending similarity; ``filter`` is an exact
  match over metadata fields
- Metadata values are strings; stores without a null type cannot hold ``None``

All methods are asynchronous; failures raise ``VectorStoreError`` subclasses
rather than returning sentinel values.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence


@dataclass
class VectorRecord:
    """One vector with its id and string metadata."""
    id: str
    values: List[float]
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class VectorMatch:
    """A nearest-neighbor hit. ``metadata`` is ``None`` when the store has none for the id."""
    id: str
    score: float
    metadata: Optional[Dict[str, str]] = None


class VectorStore(ABC):
    """Abstract base class for vector stores."""

    @abstractmethod
    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        """Insert or replace records. Returns the number written."""
        pass

    @abstractmethod
    async def query(
        self,
        vector: Sequence[float],
        top_k: int = 10,
        filter: Optional[Dict[str, str]] = None,
    ) -> List[VectorMatch]:
        """Return up to ``top_k`` matches, most similar first."""
        pass

    @abstractmethod
    async def delete_by_ids(self, ids: Sequence[str]) -> int:
        """Delete records by id. Returns the number deleted; unknown ids are ignored."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the vector store is healthy."""
        pass

    async def close(self) -> None:
        return None


class VectorStoreError(Exception):
    """Base exception for vector store operations."""
    pass


class VectorStoreConnectionError(VectorStoreError):
    """Connection error to vector store."""
    pass


class VectorStoreQueryError(VectorStoreError):
    """Query error in vector store."""
    pass
