"""
Query Gateway - read-only, multi-resource access to PostgreSQL servers.

The package exposes a small set of operations over an allow-list of servers
and databases:

- Resource listing and default resolution
- Connection testing with pooled, encrypted sessions
- Validated, size- and row-limited SELECT execution
- Catalog introspection (tables, views, routines, triggers, table schemas)

Every error message surfaced to a caller is sanitized so credentials never
leave the process.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from query_gateway.config import Settings, get_settings
from query_gateway.domain.errors import (
    AmbiguousError,
    ConfigurationError,
    ExecutionError,
    GatewayConnectionError,
    GatewayError,
    InactiveError,
    NotFoundError,
    PermissionDeniedError,
    QueryTimeoutError,
    RejectedError,
    ResultTooLargeError,
)
from query_gateway.gateway import QueryGateway
from query_gateway.registry import ResourceRegistry
from query_gateway.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Gateway
    "QueryGateway",
    "ResourceRegistry",
    # Errors
    "GatewayError",
    "ConfigurationError",
    "NotFoundError",
    "InactiveError",
    "AmbiguousError",
    "RejectedError",
    "GatewayConnectionError",
    "ExecutionError",
    "QueryTimeoutError",
    "PermissionDeniedError",
    "ResultTooLargeError",
    # Logging
    "configure_logging",
    "get_logger",
]
