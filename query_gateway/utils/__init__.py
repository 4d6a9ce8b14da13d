"""
Utilities package for the query gateway.

Exports shared helpers for logging, auditing and message sanitizing.
Keep this package lightweight and free of domain-specific logic.
"""

from query_gateway.utils.logging import configure_logging, get_logger
from query_gateway.utils.sanitizer import sanitize

__all__ = [
    "configure_logging",
    "get_logger",
    "sanitize",
]
