"""
Error taxonomy for the query gateway.

Every error is terminal for the request that raised it; the gateway never
retries. Messages are sanitized on construction, so a `GatewayError` can be
shown to a caller as-is.
"""

from __future__ import annotations

from typing import Optional

from query_gateway.utils.sanitizer import sanitize


class GatewayError(Exception):
    """Base class for all errors surfaced by the gateway."""

    def __init__(self, message: str) -> None:
        self.message = sanitize(message)
        super().__init__(self.message)


class ConfigurationError(GatewayError, ValueError):
    """Resource configuration is malformed. Raised at startup only."""


class NotFoundError(GatewayError):
    """Unknown server, database or catalog object."""


class InactiveError(GatewayError):
    """Known resource that is disabled by its `active` flag."""


class AmbiguousError(GatewayError):
    """No server/database was given and no unambiguous default exists."""


class RejectedError(GatewayError):
    """Query failed the read-only safety validator."""

    def __init__(self, message: str, category: str) -> None:
        self.category = category
        super().__init__(message)


class GatewayConnectionError(GatewayError):
    """A pooled connection could not be established or reused."""


class ExecutionError(GatewayError):
    """The query reached the database but failed or exceeded a limit."""

    kind: str = "failed"

    def __init__(self, message: str, kind: Optional[str] = None) -> None:
        if kind is not None:
            self.kind = kind
        super().__init__(message)


class QueryTimeoutError(ExecutionError):
    kind = "timeout"


class PermissionDeniedError(ExecutionError):
    kind = "permission_denied"


class ResultTooLargeError(ExecutionError):
    kind = "too_large"


__all__ = [
    "AmbiguousError",
    "ConfigurationError",
    "ExecutionError",
    "GatewayConnectionError",
    "GatewayError",
    "InactiveError",
    "NotFoundError",
    "PermissionDeniedError",
    "QueryTimeoutError",
    "RejectedError",
    "ResultTooLargeError",
]
