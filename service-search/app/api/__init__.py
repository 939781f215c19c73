"""API subpackage for the search service.

Routers expose the search endpoints, the content event hook, and the public
blog reads. Transport layer remains thin and delegates to ``SearchManager``.
"""
