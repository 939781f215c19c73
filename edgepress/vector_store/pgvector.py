"""PgVector implementation of vector store.

Vectors live in PostgreSQL using the pgvector extension, one row per content
id. Cosine distance is computed with the ``<=>`` operator and reported as a
similarity score ``1 - distance``. Metadata is a JSONB document of strings;
the query filter is a containment test (``metadata @> filter``).

Connection management
- A shared asyncpg pool is created on demand and reused across calls
- Each pooled connection registers the pgvector and JSONB codecs
- Queries are funneled through ``_execute_query`` for uniform error handling
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence

import asyncpg
import numpy as np
import structlog
from asyncpg import Connection, Pool
from pgvector.asyncpg import register_vector

from .base import (
    VectorMatch,
    VectorRecord,
    VectorStore,
    VectorStoreConnectionError,
    VectorStoreQueryError,
)

logger = structlog.get_logger("vector_store.pgvector")

DEFAULT_TABLE = "content_vectors"


def schema_sql(table: str = DEFAULT_TABLE, dimension: int = 768) -> str:
    """DDL for the vector table and its HNSW cosine index."""
    return f"""
        CREATE EXTENSION IF NOT EXISTS vector;
        CREATE TABLE IF NOT EXISTS {table} (
            id TEXT PRIMARY KEY,
            embedding vector({dimension}) NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        );
        CREATE INDEX IF NOT EXISTS idx_{table}_embedding
            ON {table} USING hnsw (embedding vector_cosine_ops);
        CREATE INDEX IF NOT EXISTS idx_{table}_metadata
            ON {table} USING gin (metadata jsonb_path_ops);
    """


class PgVectorStore(VectorStore):
    """PgVector implementation of vector store."""

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        max_queries: int = 50000,
        command_timeout: int = 60,
        vector_dimension: Optional[int] = None,
        table: str = DEFAULT_TABLE,
    ):
        """Configure a PgVector-backed vector store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - pool_size: Max size of asyncpg connection pool
        - max_queries: Queries per connection before recycling
        - command_timeout: Seconds to allow per DB command
        - vector_dimension: Expected dimensionality for stored vectors
        - table: Table holding one row per content id
        """
        self.dsn = dsn
        self.pool_size = pool_size
        self.max_queries = max_queries
        self.command_timeout = command_timeout
        self.vector_dimension = vector_dimension
        self.table = table
        self._pool: Optional[Pool] = None

    async def _init_connection(self, conn: Connection) -> None:
        """Register pgvector and JSONB codecs for asyncpg connections."""
        await register_vector(conn)
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )

    async def initialize(self) -> None:
        """Create the extension, table, and indexes.

        Runs on a bare connection: the pool's codec setup needs the ``vector``
        type to exist already.
        """
        try:
            conn = await asyncpg.connect(self.dsn)
        except (asyncpg.PostgresError, OSError) as e:
            raise VectorStoreConnectionError(f"Failed to connect: {e}") from e
        try:
            await conn.execute(schema_sql(self.table, self.vector_dimension or 768))
        except asyncpg.PostgresError as e:
            raise VectorStoreQueryError(f"Schema creation failed: {e}") from e
        finally:
            await conn.close()
        logger.info("PgVector schema ensured", table=self.table, dimension=self.vector_dimension)

    async def _get_pool(self) -> Pool:
        """Get or create connection pool.

        Lazily initializes an asyncpg pool so callers don't pay startup cost
        unless/until they make a call that requires the database.
        """
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    max_queries=self.max_queries,
                    command_timeout=self.command_timeout,
                    init=self._init_connection,
                )
                logger.info("Created PgVector connection pool", pool_size=self.pool_size)
            except (asyncpg.PostgresError, OSError) as e:
                logger.error("Failed to create PgVector connection pool", error=str(e))
                raise VectorStoreConnectionError(f"Failed to create connection pool: {e}") from e

        return self._pool

    async def _execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False,
        fetch_one: bool = False
    ) -> Any:
        """Execute a query with error handling.

        The ``fetch``/``fetch_one`` flags control how results are retrieved.
        Driver failures are wrapped in ``VectorStoreQueryError``.
        """
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                if fetch_one:
                    return await conn.fetchrow(query, *args)
                if fetch:
                    return await conn.fetch(query, *args)
                return await conn.execute(query, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Query execution failed", error=str(e))
            raise VectorStoreQueryError(f"Query failed: {e}") from e

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0

        try:
            batch = [
                (record.id, self._ensure_vector_dimension(record.values), dict(record.metadata))
                for record in records
            ]
        except ValueError as e:
            raise VectorStoreQueryError(str(e)) from e

        query = f"""
            INSERT INTO {self.table} (id, embedding, metadata)
            VALUES ($1, $2, $3)
            ON CONFLICT (id)
            DO UPDATE SET
                embedding = EXCLUDED.embedding,
                metadata = EXCLUDED.metadata,
                updated_at = CURRENT_TIMESTAMP
        """
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                await conn.executemany(query, batch)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Vector upsert failed", count=len(batch), error=str(e))
            raise VectorStoreQueryError(f"Upsert failed: {e}") from e

        logger.info("Upserted vectors", count=len(batch), table=self.table)
        return len(batch)

    async def query(
        self,
        vector: Sequence[float],
        top_k: int = 10,
        filter: Optional[Dict[str, str]] = None,
    ) -> List[VectorMatch]:
        """Nearest neighbours by cosine distance, optionally filtered on metadata."""
        try:
            vector_array = self._ensure_vector_dimension(vector)
        except ValueError as e:
            raise VectorStoreQueryError(str(e)) from e

        if filter:
            query = f"""
                SELECT id, 1 - (embedding <=> $1) AS score, metadata
                FROM {self.table}
                WHERE metadata @> $2::jsonb
                ORDER BY embedding <=> $1
                LIMIT $3
            """
            args = (vector_array, dict(filter), top_k)
        else:
            query = f"""
                SELECT id, 1 - (embedding <=> $1) AS score, metadata
                FROM {self.table}
                ORDER BY embedding <=> $1
                LIMIT $2
            """
            args = (vector_array, top_k)

        rows = await self._execute_query(query, *args, fetch=True)
        matches = [
            VectorMatch(id=row["id"], score=float(row["score"]), metadata=row["metadata"] or None)
            for row in rows
        ]

        logger.debug(
            "Vector similarity search completed",
            top_k=top_k,
            filtered=bool(filter),
            results_count=len(matches),
        )
        return matches

    async def delete_by_ids(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        result = await self._execute_query(
            f"DELETE FROM {self.table} WHERE id = ANY($1::text[])",
            list(ids),
        )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        deleted = int(result.split()[-1])
        logger.info("Deleted vectors", requested=len(ids), deleted=deleted)
        return deleted

    async def count(self) -> int:
        row = await self._execute_query(f"SELECT COUNT(*) AS count FROM {self.table}", fetch_one=True)
        return row["count"] if row else 0

    async def health_check(self) -> bool:
        """Check if the vector store is healthy."""
        try:
            await self._execute_query("SELECT 1", fetch_one=True)
            return True
        except (VectorStoreConnectionError, VectorStoreQueryError) as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Closed PgVector connection pool")

    def _ensure_vector_dimension(self, vector: Iterable[float]) -> np.ndarray:
        """Ensure a vector matches the expected dimensionality."""
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1:
            raise ValueError("Vector must be one-dimensional")

        if self.vector_dimension is not None and array.shape[0] != self.vector_dimension:
            raise ValueError(
                f"Expected vector dimension {self.vector_dimension}, "
                f"got {array.shape[0]}"
            )
        return array
