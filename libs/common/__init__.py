"""Common utilities shared by the driver, CLI and Locust user.

Includes:
- ``config``: pydantic-settings run configuration from ``LT_*`` variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus collectors for requests, checks and iterations.

Import pattern:
- from libs.common.config import LoadTestConfig
- from libs.common.logging import configure_logging
"""
