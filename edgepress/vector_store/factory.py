"""Vector store factory.

Centralizes creation of concrete ``VectorStore`` backends so callers don't
depend on implementation details.
"""

from enum import Enum
from typing import Any, Dict, Mapping

import structlog

from .base import VectorStore
from .memory import InMemoryVectorStore
from .pgvector import PgVectorStore

logger = structlog.get_logger("vector_store.factory")


class VectorStoreType(Enum):
    """Supported vector store types."""
    PGVECTOR = "pgvector"
    MEMORY = "memory"


def create_vector_store(store_type: str, config: Dict[str, Any]) -> VectorStore:
    """Create a vector store instance.

    Parameters
    - store_type: ``pgvector`` or ``memory``
    - config: Backend-specific parameters (e.g., DSN for pgvector)
    """
    try:
        store_type_enum = VectorStoreType(store_type)
    except ValueError:
        raise ValueError(f"Unsupported vector store type: {store_type}")

    if store_type_enum == VectorStoreType.PGVECTOR:
        dsn = config.get("dsn")
        if not dsn:
            raise ValueError("PgVector requires 'dsn' in config")
        return PgVectorStore(
            dsn=dsn,
            pool_size=config.get("pool_size", 10),
            max_queries=config.get("max_queries", 50000),
            command_timeout=config.get("command_timeout", 60),
            vector_dimension=config.get("vector_dimension"),
            table=config.get("table", "content_vectors"),
        )

    return InMemoryVectorStore(vector_dimension=config.get("vector_dimension"))


def create_vector_store_from_env(env_config: Mapping[str, str]) -> VectorStore:
    """Create vector store from environment configuration.

    Parameters
    - env_config: A flat mapping of environment variable names to values

    Returns
    - A ``VectorStore`` configured to talk to the backing datastore
    """
    backend = env_config.get("EP_VECTOR_BACKEND", "pgvector")
    dimension = int(env_config.get("EP_VECTOR_DIMENSION", "768"))

    if backend == "pgvector":
        dsn = env_config.get("EP_VECTOR_DB_DSN")
        if not dsn:
            raise ValueError("EP_VECTOR_DB_DSN environment variable is required")
        config = {
            "dsn": dsn,
            "pool_size": int(env_config.get("EP_VECTOR_POOL_SIZE", "10")),
            "max_queries": int(env_config.get("EP_VECTOR_MAX_QUERIES", "50000")),
            "command_timeout": int(env_config.get("EP_VECTOR_COMMAND_TIMEOUT", "60")),
            "vector_dimension": dimension,
            "table": env_config.get("EP_VECTOR_TABLE", "content_vectors"),
        }
    else:
        config = {"vector_dimension": dimension}

    store = create_vector_store(backend, config)
    logger.info("Vector store created", backend=backend, dimension=dimension)
    return store


def create_vector_store_from_config(config: Any) -> VectorStore:
    """Create the vector store described by a ``BaseConfig``."""
    return create_vector_store_from_env({
        "EP_VECTOR_BACKEND": config.ep_vector_backend,
        "EP_VECTOR_DB_DSN": config.ep_vector_db_dsn,
        "EP_VECTOR_DIMENSION": str(config.ep_vector_dimension),
        "EP_VECTOR_POOL_SIZE": str(config.ep_vector_pool_size),
    })
