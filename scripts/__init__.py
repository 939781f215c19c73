"""Operational scripts for EdgePress retrieval.

Scripts include:
- ``init_db.py``: create the content and vector schemas.
- ``reindex_all.py``: re-embed all published content into the vector store.
"""
