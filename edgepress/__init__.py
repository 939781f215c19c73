"""Shared libraries for the EdgePress retrieval and caching core.

Subpackages:
- ``edgepress.common``: configuration, logging, and metrics.
- ``edgepress.cache``: tag-versioned KV cache, edge response cache, Cache-Control
  headers, and the invalidation orchestrator.
- ``edgepress.content``: content entities, row mapping, and content stores.
- ``edgepress.search``: lexical, full-text, and semantic search engines.
- ``edgepress.vector_store``: vector store abstractions and the pgvector backend.

Notes:
- Caching is advisory everywhere; search backends are not. Keep that split when
  adding new components.
"""
