"""Caching layers for EdgePress.

- ``base``: the key/value store contract and ``CacheUnavailable``.
- ``redis_store``: Redis-backed key/value store.
- ``tagged``: ``TagVersionedCache`` with O(1) tag invalidation via version counters.
- ``edge``: whole-response cache for anonymous GET requests.
- ``headers``: Cache-Control header builder and presets.
- ``orchestrator``: sequences invalidation after content mutations.

Every cache here is advisory: failures are logged and degrade to a miss.
"""
