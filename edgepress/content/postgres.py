"""PostgreSQL implementation of the content store.

Full-text search uses a stored ``tsvector`` column weighted title > excerpt >
body and ``ts_rank_cd`` for ranking. Unlike FTS5 ``bm25()``, ``ts_rank_cd``
is descending (higher is more relevant), which this store declares through
``lower_rank_is_better = False``.

Connection management
- A shared asyncpg pool is created on demand and reused across calls
- Queries are funneled through ``_execute_query`` for uniform error handling
"""

from typing import Any, List, Optional

import asyncpg
import structlog
from asyncpg import Pool

from edgepress.search.base import SearchBackendError
from edgepress.search.models import SearchResult
from .base import Content, ContentStore, ContentStoreError, content_from_row, search_result_from_row

logger = structlog.get_logger("content.postgres")

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    content_md TEXT NOT NULL DEFAULT '',
    excerpt TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    published_at TIMESTAMP WITH TIME ZONE,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    reading_time INTEGER,
    category_id TEXT REFERENCES categories(id),
    author_name TEXT,
    search_vector tsvector GENERATED ALWAYS AS (
        setweight(to_tsvector('simple', coalesce(title, '')), 'A') ||
        setweight(to_tsvector('simple', coalesce(excerpt, '')), 'B') ||
        setweight(to_tsvector('simple', coalesce(content_md, '')), 'C')
    ) STORED
);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS post_tags (
    post_id TEXT NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (post_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_posts_status_published ON posts(status, published_at DESC);
CREATE INDEX IF NOT EXISTS idx_posts_search_vector ON posts USING gin(search_vector);
"""

_TAGS_SUBQUERY = """
    (SELECT string_agg(t.name, '|' ORDER BY t.name)
     FROM post_tags pt JOIN tags t ON t.id = pt.tag_id
     WHERE pt.post_id = p.id) AS tags
"""

_CONTENT_COLUMNS = f"""
    p.id, p.title, p.slug, p.content_md, p.excerpt, p.status,
    p.published_at, p.updated_at, p.reading_time, p.category_id, p.author_name,
    c.name AS category_name, c.slug AS category_slug,
    {_TAGS_SUBQUERY}
"""

_HEADLINE_OPTIONS = 'StartSel="", StopSel="", MaxWords=8, MinWords=3, MaxFragments=1, FragmentDelimiter=" … "'


class PgContentStore(ContentStore):
    """Content store on PostgreSQL via asyncpg."""

    lower_rank_is_better = False

    def __init__(self, dsn: str, pool_size: int = 10, command_timeout: int = 30):
        """Configure a PostgreSQL-backed content store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - pool_size: Max size of asyncpg connection pool
        - command_timeout: Seconds to allow per DB command
        """
        self.dsn = dsn
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self._pool: Optional[Pool] = None

    async def _get_pool(self) -> Pool:
        """Get or create connection pool."""
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    command_timeout=self.command_timeout,
                )
                logger.info("Created content store connection pool", pool_size=self.pool_size)
            except (asyncpg.PostgresError, OSError) as e:
                logger.error("Failed to create content store connection pool", error=str(e))
                raise ContentStoreError(f"Failed to create connection pool: {e}") from e
        return self._pool

    async def _execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False,
        fetch_one: bool = False
    ) -> Any:
        """Execute a query, wrapping driver failures in ``ContentStoreError``."""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                if fetch_one:
                    return await conn.fetchrow(query, *args)
                if fetch:
                    return await conn.fetch(query, *args)
                return await conn.execute(query, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Content query failed", error=str(e))
            raise ContentStoreError(f"Query failed: {e}") from e

    async def initialize(self) -> None:
        await self._execute_query(SCHEMA)
        logger.info("PostgreSQL content schema ensured")

    async def get_published_content(self, limit: int = 20, offset: int = 0) -> List[Content]:
        query = f"""
            SELECT {_CONTENT_COLUMNS}
            FROM posts p
            LEFT JOIN categories c ON c.id = p.category_id
            WHERE p.status = 'published' AND p.published_at <= now()
            ORDER BY p.published_at DESC, p.id ASC
            LIMIT $1 OFFSET $2
        """
        rows = await self._execute_query(query, limit, offset, fetch=True)
        return [content_from_row(row) for row in rows]

    async def get_content_by_id(self, content_id: str) -> Optional[Content]:
        query = f"""
            SELECT {_CONTENT_COLUMNS}
            FROM posts p
            LEFT JOIN categories c ON c.id = p.category_id
            WHERE p.id = $1
        """
        row = await self._execute_query(query, content_id, fetch_one=True)
        return content_from_row(row) if row else None

    async def get_content_by_slug(self, slug: str) -> Optional[Content]:
        query = f"""
            SELECT {_CONTENT_COLUMNS}
            FROM posts p
            LEFT JOIN categories c ON c.id = p.category_id
            WHERE p.slug = $1 AND p.status = 'published' AND p.published_at <= now()
            LIMIT 1
        """
        row = await self._execute_query(query, slug, fetch_one=True)
        return content_from_row(row) if row else None

    def match_expression(self, tokens: List[str]) -> str:
        """``to_tsquery`` syntax: quoted prefix lexemes joined with ``&``."""
        return " & ".join(f"'{token}':*" for token in tokens)

    async def full_text_search(self, match_expression: str, limit: int = 20) -> List[SearchResult]:
        """Ranked text query ordered by ``ts_rank_cd`` descending."""
        query = f"""
            SELECT
                p.id, p.slug, p.title,
                COALESCE(p.excerpt, left(p.content_md, 200)) AS excerpt,
                p.published_at, p.reading_time,
                ts_headline('simple', p.content_md, to_tsquery('simple', $1), '{_HEADLINE_OPTIONS}') AS highlight,
                ts_rank_cd(p.search_vector, to_tsquery('simple', $1)) AS score,
                {_TAGS_SUBQUERY}
            FROM posts p
            WHERE p.search_vector @@ to_tsquery('simple', $1)
              AND p.status = 'published' AND p.published_at <= now()
            ORDER BY score DESC
            LIMIT $2
        """
        try:
            rows = await self._execute_query(query, match_expression, limit, fetch=True)
        except ContentStoreError as e:
            raise SearchBackendError(str(e)) from e
        return [search_result_from_row(row) for row in rows]

    async def health_check(self) -> bool:
        try:
            await self._execute_query("SELECT 1", fetch_one=True)
            return True
        except ContentStoreError as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Closed content store connection pool")
