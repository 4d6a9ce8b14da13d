"""Query validation, execution and catalog SQL."""

from query_gateway.query.executor import QueryExecutor, serialized_size
from query_gateway.query.validator import clean_query, is_safe_query, validate_query

__all__ = ["QueryExecutor", "clean_query", "is_safe_query", "serialized_size", "validate_query"]
