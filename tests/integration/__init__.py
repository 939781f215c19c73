"""Integration tests against live Redis and PostgreSQL."""
