"""Tests for the EdgePress retrieval and caching core."""
