"""Shared search errors.

Search backends are not advisory: these errors reach the caller, which decides
whether to degrade. They are never converted into an empty result here.
"""


class SearchBackendError(Exception):
    """Full-text backend rejected the query or is unavailable."""
    pass


class EmbeddingError(Exception):
    """Embedding provider failed or returned no usable vector."""
    pass
