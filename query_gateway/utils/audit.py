"""
Audit events for gateway operations.

The gateway emits one structured record per operation on the
`query_gateway.audit` logger; where the records end up (file, SIEM, nothing)
is decided by whoever configures that logger's handlers.
"""

from __future__ import annotations

import contextlib
import time
from typing import Any, Dict, Generator, Optional

from query_gateway.utils.logging import get_logger
from query_gateway.utils.sanitizer import sanitize

audit_log = get_logger("query_gateway.audit")

QUERY_PREVIEW_CHARS = 500


def emit_audit_event(
    operation: str,
    component: str,
    success: bool,
    parameters: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
    execution_time_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """Log and return a single audit record."""
    params = dict(parameters or {})
    if isinstance(params.get("query"), str):
        params["query"] = params["query"][:QUERY_PREVIEW_CHARS]

    event: Dict[str, Any] = {
        "operation": operation,
        "operation_type": "READ",
        "component": component,
        "success": success,
        "parameters": params,
        "execution_time_ms": execution_time_ms,
    }
    if error is not None:
        event["error"] = sanitize(error)

    status = "SUCCESS" if success else "FAILED"
    audit_log.info(f"[AUDIT] {operation} {component} - {status}", extra=event)
    return event


@contextlib.contextmanager
def audit_operation(
    operation: str, component: str, parameters: Optional[Dict[str, Any]] = None
) -> Generator[Dict[str, Any], None, None]:
    """
    Time the enclosed block and emit one audit event when it ends.

    The yielded dict is merged into the event's parameters, so the block can
    record outcome details (row counts, truncation). Exceptions are recorded
    as failures and re-raised.
    """
    details: Dict[str, Any] = dict(parameters or {})
    start = time.perf_counter()
    try:
        yield details
    except Exception as exc:
        emit_audit_event(
            operation,
            component,
            success=False,
            parameters=details,
            error=str(exc),
            execution_time_ms=int((time.perf_counter() - start) * 1000),
        )
        raise
    emit_audit_event(
        operation,
        component,
        success=True,
        parameters=details,
        execution_time_ms=int((time.perf_counter() - start) * 1000),
    )


__all__ = ["QUERY_PREVIEW_CHARS", "audit_log", "audit_operation", "emit_audit_event"]
