#!/usr/bin/env python3
"""Create the content and vector schemas.

Content schema goes to the configured content backend (SQLite file or
PostgreSQL); the vector table is created only for the pgvector backend.
"""

import argparse
import asyncio
import sys

import structlog

from edgepress.common.config import BaseConfig
from edgepress.common.logging import configure_logging
from edgepress.content import ContentStoreError, create_content_store
from edgepress.vector_store.base import VectorStoreError
from edgepress.vector_store.pgvector import PgVectorStore

logger = structlog.get_logger("init_db")


async def init_database(config: BaseConfig, skip_vectors: bool = False) -> bool:
    """Initialize schemas. Returns ``False`` if any step failed."""
    content_store = create_content_store(config)
    try:
        await content_store.initialize()
        print(f"✓ content schema ready ({config.ep_content_backend})")
    except ContentStoreError as e:
        logger.error("Content schema creation failed", error=str(e))
        return False
    finally:
        await content_store.close()

    if skip_vectors or config.ep_vector_backend != "pgvector":
        print(f"- vector schema skipped (backend: {config.ep_vector_backend})")
        return True

    vector_store = PgVectorStore(config.ep_vector_db_dsn, vector_dimension=config.ep_vector_dimension)
    try:
        await vector_store.initialize()
        print(f"✓ content_vectors table ready with dimension {config.ep_vector_dimension}")
    except VectorStoreError as e:
        logger.error("Vector schema creation failed", error=str(e))
        return False
    finally:
        await vector_store.close()

    return True


def main():
    parser = argparse.ArgumentParser(description="Create EdgePress content and vector schemas")
    parser.add_argument("--skip-vectors", action="store_true", help="Only create the content schema")
    args = parser.parse_args()

    config = BaseConfig()
    configure_logging("init_db", config.ep_log_level, config.ep_log_format)

    ok = asyncio.run(init_database(config, skip_vectors=args.skip_vectors))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
