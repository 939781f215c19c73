"""Search component wiring.

Includes the ``SearchManager`` which builds the caches, content store, and
search engines from config and runs full-text and semantic search side by side.
"""
