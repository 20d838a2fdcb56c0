"""Prometheus metrics middleware for HTTP request instrumentation.

Collects HTTP request metrics:
- Request count by method, endpoint, status code
- Request duration histogram
- In-flight requests gauge
"""

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from dbadmin.metrics import (
    REQUEST_COUNT,
    REQUEST_DURATION,
    REQUEST_IN_FLIGHT,
)

# Path segment -> placeholder for the segment that follows it
_DYNAMIC_SEGMENTS = {
    "workspaces": "{workspace_id}",
    "tables": "{table_name}",
    "roles": "{role_id}",
}


def normalize_path(path: str) -> str:
    """
    Normalize path for metrics labels to avoid high cardinality.

    Examples:
        /workspaces/ws1/database/tables -> /workspaces/{workspace_id}/database/tables
        /workspaces/ws1/database/tables/orders/rows ->
            /workspaces/{workspace_id}/database/tables/{table_name}/rows
        /workspaces/ws1/database/routines/FUNCTION/add_one ->
            /workspaces/{workspace_id}/database/routines/{kind}/{routine_name}
    """
    parts = path.strip("/").split("/")
    normalized = []

    i = 0
    while i < len(parts):
        part = parts[i]

        if part in _DYNAMIC_SEGMENTS and i + 1 < len(parts):
            normalized.append(part)
            normalized.append(_DYNAMIC_SEGMENTS[part])
            i += 2
            continue

        if part == "routines" and i + 2 < len(parts):
            normalized.extend(["routines", "{kind}", "{routine_name}"])
            i += 3
            continue

        normalized.append(part)
        i += 1

    return "/" + "/".join(p for p in normalized if p) if any(normalized) else "/"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collects Prometheus metrics for every HTTP request except internal endpoints."""

    SKIP_PATHS = {"/metrics", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        method = request.method

        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        endpoint = normalize_path(request.url.path)

        REQUEST_IN_FLIGHT.labels(method=method).inc()
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            REQUEST_IN_FLIGHT.labels(method=method).dec()
            REQUEST_COUNT.labels(
                method=method, endpoint=endpoint, status_code=str(status_code)
            ).inc()
            REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)
