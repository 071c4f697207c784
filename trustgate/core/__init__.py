"""Core module with logging, middleware, and exception handling."""

from trustgate.core.exceptions import ConfigurationError, setup_exception_handlers
from trustgate.core.logging import get_logger, setup_logging
from trustgate.core.middleware import (
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    get_client_ip,
)

__all__ = [
    "ConfigurationError",
    "get_logger",
    "setup_logging",
    "RequestContextMiddleware",
    "SecurityHeadersMiddleware",
    "get_client_ip",
    "setup_exception_handlers",
]
