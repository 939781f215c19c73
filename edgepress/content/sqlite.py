"""SQLite implementation of the content store.

Full-text search runs on an FTS5 external-content table kept in sync with
``posts`` by triggers. Ranking uses ``bm25()``, whose convention is ascending:
the more negative the score, the more relevant the row.

``sqlite3`` is synchronous, so every statement runs in a worker thread behind
an ``asyncio.Lock`` (one connection, one statement at a time).
"""

import asyncio
import sqlite3
from typing import Any, Iterable, List, Optional

import structlog

from edgepress.search.base import SearchBackendError
from edgepress.search.models import SearchResult
from .base import (
    Content,
    ContentStore,
    ContentStoreError,
    content_from_row,
    search_result_from_row,
    utc_now_iso,
)

logger = structlog.get_logger("content.sqlite")

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
    published_at TEXT,
    updated_at TEXT,
    reading_time INTEGER,
    category_id TEXT REFERENCES categories(id),
    author_name TEXT
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

CREATE INDEX IF NOT EXISTS idx_posts_status_published ON posts(status, published_at);

CREATE VIRTUAL TABLE IF NOT EXISTS posts_fts USING fts5(
    title, content_md, excerpt,
    content='posts'
);

CREATE TRIGGER IF NOT EXISTS posts_fts_ai AFTER INSERT ON posts BEGIN
    INSERT INTO posts_fts(rowid, title, content_md, excerpt)
    VALUES (new.rowid, new.title, new.content_md, new.excerpt);
END;

CREATE TRIGGER IF NOT EXISTS posts_fts_ad AFTER DELETE ON posts BEGIN
    INSERT INTO posts_fts(posts_fts, rowid, title, content_md, excerpt)
    VALUES ('delete', old.rowid, old.title, old.content_md, old.excerpt);
END;

CREATE TRIGGER IF NOT EXISTS posts_fts_au AFTER UPDATE ON posts BEGIN
    INSERT INTO posts_fts(posts_fts, rowid, title, content_md, excerpt)
    VALUES ('delete', old.rowid, old.title, old.content_md, old.excerpt);
    INSERT INTO posts_fts(rowid, title, content_md, excerpt)
    VALUES (new.rowid, new.title, new.content_md, new.excerpt);
END;
"""

# Tag names for one post, alphabetical, flattened with '|'.
_TAGS_SUBQUERY = """
    (SELECT GROUP_CONCAT(name, '|') FROM (
        SELECT t.name FROM post_tags pt
        JOIN tags t ON t.id = pt.tag_id
        WHERE pt.post_id = p.id
        ORDER BY t.name
    )) AS tags
"""

_CONTENT_COLUMNS = f"""
    p.id, p.title, p.slug, p.content_md, p.excerpt, p.status,
    p.published_at, p.updated_at, p.reading_time, p.category_id, p.author_name,
    c.name AS category_name, c.slug AS category_slug,
    {_TAGS_SUBQUERY}
"""


class SqliteContentStore(ContentStore):
    """Content store on a local SQLite database with FTS5.

    Parameters
    - path: Database file path, or ``":memory:"``
    """

    lower_rank_is_better = True

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(self.path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._conn = conn
        return self._conn

    async def _run(self, func, *args: Any) -> Any:
        async with self._lock:
            return await asyncio.to_thread(func, *args)

    def _fetch_all(self, sql: str, params: Iterable[Any]) -> List[sqlite3.Row]:
        return self._connect().execute(sql, tuple(params)).fetchall()

    def _fetch_one(self, sql: str, params: Iterable[Any]) -> Optional[sqlite3.Row]:
        return self._connect().execute(sql, tuple(params)).fetchone()

    def _execute(self, sql: str, params: Iterable[Any]) -> int:
        conn = self._connect()
        with conn:
            cursor = conn.execute(sql, tuple(params))
        return cursor.rowcount

    def _executescript(self, script: str) -> None:
        conn = self._connect()
        with conn:
            conn.executescript(script)

    async def initialize(self) -> None:
        """Create tables, the FTS5 index, and its sync triggers."""
        try:
            await self._run(self._executescript, SCHEMA)
        except sqlite3.Error as e:
            logger.error("Failed to initialize SQLite content store", path=self.path, error=str(e))
            raise ContentStoreError(f"Schema creation failed: {e}") from e
        logger.info("SQLite content store initialized", path=self.path)

    async def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Run one write statement in its own transaction (migrations, fixtures)."""
        try:
            return await self._run(self._execute, sql, params)
        except sqlite3.Error as e:
            raise ContentStoreError(f"Statement failed: {e}") from e

    async def _query(self, sql: str, params: Iterable[Any], one: bool = False) -> Any:
        try:
            if one:
                return await self._run(self._fetch_one, sql, params)
            return await self._run(self._fetch_all, sql, params)
        except sqlite3.Error as e:
            logger.error("Content query failed", error=str(e))
            raise ContentStoreError(f"Query failed: {e}") from e

    async def get_published_content(self, limit: int = 20, offset: int = 0) -> List[Content]:
        sql = f"""
            SELECT {_CONTENT_COLUMNS}
            FROM posts p
            LEFT JOIN categories c ON c.id = p.category_id
            WHERE p.status = 'published' AND p.published_at <= ?
            ORDER BY p.published_at DESC, p.rowid ASC
            LIMIT ? OFFSET ?
        """
        rows = await self._query(sql, (utc_now_iso(), limit, offset))
        return [content_from_row(row) for row in rows]

    async def get_content_by_id(self, content_id: str) -> Optional[Content]:
        sql = f"""
            SELECT {_CONTENT_COLUMNS}
            FROM posts p
            LEFT JOIN categories c ON c.id = p.category_id
            WHERE p.id = ?
        """
        row = await self._query(sql, (content_id,), one=True)
        return content_from_row(row) if row else None

    async def get_content_by_slug(self, slug: str) -> Optional[Content]:
        sql = f"""
            SELECT {_CONTENT_COLUMNS}
            FROM posts p
            LEFT JOIN categories c ON c.id = p.category_id
            WHERE p.slug = ? AND p.status = 'published' AND p.published_at <= ?
            LIMIT 1
        """
        row = await self._query(sql, (slug, utc_now_iso()), one=True)
        return content_from_row(row) if row else None

    async def full_text_search(self, match_expression: str, limit: int = 20) -> List[SearchResult]:
        """FTS5 query ordered by ``bm25`` ascending (most relevant first)."""
        sql = f"""
            SELECT
                p.id, p.slug, p.title,
                COALESCE(p.excerpt, substr(p.content_md, 1, 200)) AS excerpt,
                p.published_at, p.reading_time,
                snippet(posts_fts, 1, '', '', ' … ', 8) AS highlight,
                bm25(posts_fts) AS score,
                {_TAGS_SUBQUERY}
            FROM posts_fts
            JOIN posts p ON p.rowid = posts_fts.rowid
            WHERE posts_fts MATCH ? AND p.status = 'published' AND p.published_at <= ?
            ORDER BY score ASC
            LIMIT ?
        """
        try:
            rows = await self._run(self._fetch_all, sql, (match_expression, utc_now_iso(), limit))
        except sqlite3.Error as e:
            logger.error("Full-text query failed", match=match_expression, error=str(e))
            raise SearchBackendError(f"Full-text query failed: {e}") from e
        return [search_result_from_row(row) for row in rows]

    async def health_check(self) -> bool:
        try:
            await self._query("SELECT 1", ())
            return True
        except ContentStoreError as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._conn is not None:
            async with self._lock:
                self._conn.close()
                self._conn = None
            logger.info("Closed SQLite content store", path=self.path)
