"""Search service package.

Layout:
- ``api``: HTTP endpoints for search, content events, and public reads.
- ``hybrid``: component wiring and concurrent full-text + semantic search.
- ``runtime``: service-local metrics and runtime helpers.
"""
