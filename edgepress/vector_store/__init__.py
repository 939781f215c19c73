"""Vector store adapters and utilities.

Primary components:
- ``base``: abstract ``VectorStore`` interface, record types, and exceptions.
- ``pgvector``: PostgreSQL/pgvector implementation of the interface.
- ``memory``: in-process numpy implementation for development and tests.
- ``factory``: helpers to construct a store from config or env.

Guidance:
- Prefer constructing via ``factory.create_vector_store_from_env`` so runtime
  services remain decoupled from specific backends.
"""
