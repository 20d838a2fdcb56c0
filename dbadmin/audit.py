"""Operation tracking: structured log events, audit trail entries and metrics."""

import time
from contextlib import contextmanager
from typing import Any, Generator, Protocol

import structlog

from dbadmin import metrics
from dbadmin.errors import DatabaseAdminError

logger = structlog.get_logger()


class AuditSink(Protocol):
    def log_operation(
        self,
        operation: str,
        status: str,
        workspace_id: str | None = None,
        request_id: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict | None = None,
        duration_ms: int | None = None,
        error_message: str | None = None,
    ) -> None: ...


def get_request_id() -> str | None:
    """Get current request ID from context (if available)."""
    return structlog.contextvars.get_contextvars().get("request_id")


@contextmanager
def track_operation(
    sink: AuditSink | None,
    operation: str,
    workspace_id: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    **details: Any,
) -> Generator[dict[str, Any], None, None]:
    """
    Wrap an administration operation with logging, auditing and metrics.

    Emits ``{operation}_start`` and then ``{operation}_success`` or
    ``{operation}_failed``. When ``sink`` is given, the outcome is also written
    to the audit trail. The yielded dict collects extra audit details.

    Usage:
        with track_operation(sink, "drop_table", ws, "table", name) as audit:
            ...
            audit["rows"] = 10
    """
    start_time = time.time()
    request_id = get_request_id()
    audit_details: dict[str, Any] = dict(details)

    logger.info(
        f"{operation}_start",
        workspace_id=workspace_id,
        resource_type=resource_type,
        resource_id=resource_id,
        **details,
    )

    def _finish(status: str, error_message: str | None = None) -> int:
        duration_ms = int((time.time() - start_time) * 1000)
        metrics.OPERATION_COUNT.labels(operation=operation, status=status).inc()
        metrics.OPERATION_DURATION.labels(operation=operation).observe(duration_ms / 1000)
        if sink is not None:
            sink.log_operation(
                operation=operation,
                status=status,
                workspace_id=workspace_id,
                request_id=request_id,
                resource_type=resource_type,
                resource_id=resource_id,
                details=audit_details or None,
                duration_ms=duration_ms,
                error_message=error_message,
            )
        return duration_ms

    try:
        yield audit_details
    except DatabaseAdminError as e:
        audit_details["error_kind"] = e.kind
        duration_ms = _finish("failed", e.message)
        logger.warning(
            f"{operation}_failed",
            workspace_id=workspace_id,
            resource_id=resource_id,
            error=e.message,
            error_kind=e.kind,
            duration_ms=duration_ms,
        )
        raise
    except Exception as e:
        duration_ms = _finish("failed", str(e))
        logger.error(
            f"{operation}_failed",
            workspace_id=workspace_id,
            resource_id=resource_id,
            error=str(e),
            duration_ms=duration_ms,
            exc_info=True,
        )
        raise
    else:
        duration_ms = _finish("success")
        logger.info(
            f"{operation}_success",
            workspace_id=workspace_id,
            resource_id=resource_id,
            duration_ms=duration_ms,
        )
