"""Search engines for EdgePress content.

- ``lexical``: index builder and the pure client-side token scorer.
- ``fulltext``: server-side ranked search over the content store's text index.
- ``semantic``: embedding generation and nearest-neighbor vector search.

The three engines do not share a ranking scale; callers that combine them must
treat each result list (and each failure) independently.
"""
