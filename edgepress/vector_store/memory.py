"""In-process vector store for local development and tests.

Keeps vectors in a dict and scores them with cosine similarity using numpy.
Contents are lost on restart; run ``scripts/reindex_all.py`` to rebuild.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .base import VectorMatch, VectorRecord, VectorStore, VectorStoreQueryError

logger = structlog.get_logger("vector_store.memory")


class InMemoryVectorStore(VectorStore):
    """Dict-backed vector store with brute-force cosine search.

    Parameters
    - vector_dimension: Expected dimensionality; ``None`` accepts any size
      but all vectors in one store must match
    """

    def __init__(self, vector_dimension: Optional[int] = None):
        self.vector_dimension = vector_dimension
        self._records: Dict[str, Tuple[np.ndarray, Dict[str, str]]] = {}

    def _as_array(self, values: Sequence[float]) -> np.ndarray:
        array = np.asarray(values, dtype=np.float32)
        if array.ndim != 1 or array.shape[0] == 0:
            raise VectorStoreQueryError("Vector must be one-dimensional and non-empty")
        expected = self.vector_dimension
        if expected is None and self._records:
            expected = next(iter(self._records.values()))[0].shape[0]
        if expected is not None and array.shape[0] != expected:
            raise VectorStoreQueryError(f"Expected vector dimension {expected}, got {array.shape[0]}")
        return array

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        for record in records:
            self._records[record.id] = (self._as_array(record.values), dict(record.metadata))
        logger.debug("Upserted vectors", count=len(records))
        return len(records)

    async def query(
        self,
        vector: Sequence[float],
        top_k: int = 10,
        filter: Optional[Dict[str, str]] = None,
    ) -> List[VectorMatch]:
        query_vector = self._as_array(vector)
        query_norm = np.linalg.norm(query_vector)

        scored: List[VectorMatch] = []
        for record_id, (values, metadata) in self._records.items():
            if filter and any(metadata.get(k) != v for k, v in filter.items()):
                continue
            denominator = float(np.linalg.norm(values) * query_norm)
            score = float(np.dot(values, query_vector)) / denominator if denominator else 0.0
            scored.append(VectorMatch(id=record_id, score=score, metadata=dict(metadata) or None))

        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:top_k]

    async def delete_by_ids(self, ids: Sequence[str]) -> int:
        deleted = 0
        for record_id in ids:
            if self._records.pop(record_id, None) is not None:
                deleted += 1
        return deleted

    async def count(self) -> int:
        return len(self._records)

    async def health_check(self) -> bool:
        return True
