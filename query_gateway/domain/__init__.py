"""
Domain package for the query gateway.

Exports the resource, result and error types shared by the registry, pool
manager, executor and gateway. Keep this package focused on data definitions
and validation concerns.
"""

from query_gateway.domain.errors import GatewayError
from query_gateway.domain.models import (
    DatabaseResource,
    PoolKey,
    QueryRequest,
    QueryResult,
    ServerResource,
)

__all__ = [
    "DatabaseResource",
    "GatewayError",
    "PoolKey",
    "QueryRequest",
    "QueryResult",
    "ServerResource",
]
