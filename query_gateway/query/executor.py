"""
Query execution with size and row limits.

The executor runs a statement on a pooled connection, materializes the rows,
rejects results whose serialized size exceeds the byte ceiling, truncates to
the row limit and maps driver failures onto the gateway's error taxonomy.
It does not validate SQL: free-text queries are validated by the caller,
internally generated catalog queries are trusted.
"""

from __future__ import annotations

import json
import time
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import psycopg
from psycopg_pool import PoolClosed, PoolTimeout

from query_gateway.config import Settings
from query_gateway.domain.errors import (
    ExecutionError,
    GatewayConnectionError,
    PermissionDeniedError,
    QueryTimeoutError,
    ResultTooLargeError,
)
from query_gateway.domain.models import QueryResult
from query_gateway.infrastructure.pool_manager import PooledConnection
from query_gateway.utils.logging import get_logger
from query_gateway.utils.sanitizer import sanitize

log = get_logger(__name__)

Rows = List[Tuple[Any, ...]]


def serialized_size(rows: Sequence[Sequence[Any]]) -> int:
    """UTF-8 byte length of the rows rendered as JSON."""
    return len(json.dumps(rows, default=str).encode("utf-8"))


class QueryExecutor:
    """
    Parameters
    ----------
    max_rows : int
        Rows returned at most; extra rows set `truncated`.
    max_response_bytes : int
        Ceiling on the serialized size of the full result, checked before
        truncation.
    query_timeout_ms : int
        Server-side statement timeout, used in timeout messages.
    checkout_timeout_s : float | None
        How long to wait for a free connection in the inner pool.
    """

    def __init__(
        self,
        max_rows: int = 1_000,
        max_response_bytes: int = 10 * 1024 * 1024,
        query_timeout_ms: int = 30_000,
        checkout_timeout_s: Optional[float] = None,
    ) -> None:
        self.max_rows = max_rows
        self.max_response_bytes = max_response_bytes
        self.query_timeout_ms = query_timeout_ms
        self.checkout_timeout_s = checkout_timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueryExecutor":
        return cls(
            max_rows=settings.max_result_rows,
            max_response_bytes=settings.max_response_bytes,
            query_timeout_ms=settings.query_timeout_ms,
            checkout_timeout_s=settings.connect_timeout_seconds,
        )

    def _run(
        self,
        pooled: PooledConnection,
        query_text: str,
        params: Optional[Mapping[str, Any]],
    ) -> Tuple[List[str], Rows]:
        with pooled.connection(timeout=self.checkout_timeout_s) as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(query_text, params)
                    if cur.description is None:
                        return [], []
                    columns = [column.name for column in cur.description]
                    rows = [tuple(row) for row in cur.fetchall()]
            except psycopg.OperationalError as exc:
                # Session state is unknown after a cancel or a broken link:
                # closing makes the pool discard this connection.
                conn.close()
                if not isinstance(exc, psycopg.errors.QueryCanceled):
                    pooled.mark_unhealthy(str(exc))
                raise
        return columns, rows

    def execute(
        self,
        pooled: PooledConnection,
        query_text: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> QueryResult:
        """
        Run `query_text` and return a limited `QueryResult`.

        Raises
        ------
        ResultTooLargeError
            If the full result serializes to more than `max_response_bytes`.
        QueryTimeoutError, PermissionDeniedError, ExecutionError
            For failures reported by the database.
        GatewayConnectionError
            If no connection could be checked out of the pool.
        """
        start = time.perf_counter()
        try:
            columns, rows = self._run(pooled, query_text, params)
        except (PoolTimeout, PoolClosed) as exc:
            raise GatewayConnectionError(
                f"No connection available for '{pooled.key}': {exc}"
            ) from None
        except psycopg.errors.QueryCanceled:
            raise QueryTimeoutError(
                f"Query timeout exceeded ({self.query_timeout_ms}ms). "
                f"Try simplifying your query or adding WHERE clause filters."
            ) from None
        except psycopg.errors.InsufficientPrivilege:
            raise PermissionDeniedError(
                "Permission denied. Ensure the database user has SELECT permissions "
                "on the requested objects."
            ) from None
        except psycopg.Error as exc:
            message = sanitize(str(exc))
            log.error(
                f"Query execution failed on {pooled.key}",
                extra={"pool_key": str(pooled.key), "error": message, "query": query_text[:200]},
            )
            lowered = message.lower()
            if "timeout" in lowered or "timed out" in lowered:
                raise QueryTimeoutError(
                    f"Query timeout exceeded ({self.query_timeout_ms}ms): {message}"
                ) from None
            if "permission denied" in lowered:
                raise PermissionDeniedError(f"Permission denied: {message}") from None
            raise ExecutionError(f"Query execution failed: {message}") from None

        size = serialized_size(rows)
        if size > self.max_response_bytes:
            raise ResultTooLargeError(
                f"Query results too large ({size / 1024 / 1024:.2f} MB). "
                f"Maximum allowed: {self.max_response_bytes / 1024 / 1024:.2f} MB. "
                f"Add a WHERE clause or select specific columns to reduce result size."
            )

        truncated = len(rows) > self.max_rows
        limited = rows[: self.max_rows]
        log.debug(
            f"Query on {pooled.key} returned {len(limited)} row(s)",
            extra={
                "pool_key": str(pooled.key),
                "rows": len(limited),
                "truncated": truncated,
                "duration_seconds": round(time.perf_counter() - start, 3),
            },
        )
        return QueryResult(columns=columns, rows=limited, row_count=len(limited), truncated=truncated)


__all__ = ["QueryExecutor", "serialized_size"]
