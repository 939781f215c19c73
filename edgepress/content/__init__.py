"""Content entities and read-only content stores (SQLite FTS5, PostgreSQL)."""

from .base import Content, ContentStore, ContentStoreError
from .cached import CachedContentReader


def create_content_store(config):
    """Build the content store selected by ``ep_content_backend``."""
    backend = config.ep_content_backend.lower()
    if backend == "sqlite":
        from .sqlite import SqliteContentStore
        return SqliteContentStore(config.ep_sqlite_path)
    if backend == "postgres":
        if not config.ep_content_db_dsn:
            raise ValueError("EP_CONTENT_DB_DSN is required for the postgres content backend")
        from .postgres import PgContentStore
        return PgContentStore(config.ep_content_db_dsn)
    raise ValueError(f"Unsupported content backend: {config.ep_content_backend}")


__all__ = [
    "CachedContentReader",
    "Content",
    "ContentStore",
    "ContentStoreError",
    "create_content_store",
]
