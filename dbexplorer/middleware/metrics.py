"""Prometheus metrics middleware for HTTP request instrumentation.

Collects HTTP request metrics:
- Request count by method, endpoint, status code
- Request duration histogram
- In-flight requests gauge
"""

import time
import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from dbexplorer.metrics import (
    REQUEST_COUNT,
    REQUEST_DURATION,
    REQUEST_IN_FLIGHT,
)

logger = structlog.get_logger()

# Segment -> placeholders for the dynamic segments that follow it
_DYNAMIC_SEGMENTS = {
    "connections": ("{connection_id}",),
    "saved-queries": ("{query_id}",),
    "databases": ("{connection_id}",),
    "tables": ("{connection_id}",),
    "schema": ("{connection_id}", "{table_name}"),
    "data": ("{connection_id}", "{table_name}"),
    "query": ("{connection_id}",),
}

# Fixed sub-resources that must not be collapsed
_STATIC_CHILDREN = {
    "connections": {"test"},
}


def normalize_path(path: str) -> str:
    """
    Normalize path for metrics labels to avoid high cardinality.

    Replaces connection ids, saved query ids and table names with placeholders.

    Examples:
        /api/connections/7 -> /api/connections/{connection_id}
        /api/connections/test -> /api/connections/test
        /api/data/7/orders -> /api/data/{connection_id}/{table_name}
    """
    parts = path.strip("/").split("/")
    normalized = []

    i = 0
    while i < len(parts):
        part = parts[i]
        placeholders = _DYNAMIC_SEGMENTS.get(part)

        if placeholders and i + 1 < len(parts):
            if parts[i + 1] in _STATIC_CHILDREN.get(part, ()):
                normalized.extend([part, parts[i + 1]])
                i += 2
                continue

            normalized.append(part)
            taken = placeholders[: len(parts) - i - 1]
            normalized.extend(taken)
            i += 1 + len(taken)
            continue

        normalized.append(part)
        i += 1

    return "/" + "/".join(normalized) if normalized else "/"


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware that collects Prometheus metrics for HTTP requests.

    Metrics collected:
    - dbexplorer_api_requests_total: Counter by method, endpoint, status_code
    - dbexplorer_api_request_duration_seconds: Histogram by method, endpoint
    - dbexplorer_api_requests_in_flight: Gauge by method
    """

    # Endpoints to skip (internal/debug endpoints)
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

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        except Exception:
            status_code = "500"
            raise
        finally:
            duration = time.perf_counter() - start_time
            REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)
            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()
            REQUEST_IN_FLIGHT.labels(method=method).dec()

        return response
