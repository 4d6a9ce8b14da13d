"""
Infrastructure package for the query gateway.

Centralizes database connectivity concerns (credentials, per-resource
pooling). Keep this layer focused on I/O and resource management, decoupled
from validation and result shaping.
"""

from query_gateway.infrastructure.auth import connection_class, connection_kwargs
from query_gateway.infrastructure.pool_manager import PooledConnection, PoolManager

__all__ = [
    "PoolManager",
    "PooledConnection",
    "connection_class",
    "connection_kwargs",
]
