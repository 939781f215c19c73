"""Common utilities shared across services.

Includes:
- ``config``: Pydantic-based service configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from edgepress.common.config import BaseConfig
- from edgepress.common.logging import configure_logging
"""
