"""
Prometheus HTTP metrics middleware
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from pdpgate.core.metrics import (http_errors_total,
                                  http_request_duration_seconds,
                                  http_requests_total)

UNMATCHED = "unmatched"


def route_template(request: Request) -> str:
    """
    Label requests by their route template (``/api/data/{type_name}/{cid}``)
    rather than the concrete path, so CIDs and tx hashes don't create series.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts and times every request except scrapes of /metrics itself"""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        started = time.perf_counter()
        status = 500
        error_type = None
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        except Exception as e:
            error_type = type(e).__name__
            raise
        finally:
            labels = {
                "method": request.method,
                "endpoint": route_template(request),
                "status_code": str(status),
            }
            http_requests_total.labels(**labels).inc()
            http_request_duration_seconds.labels(**labels).observe(time.perf_counter() - started)
            if status >= 400:
                http_errors_total.labels(**labels, error_type=error_type or f"http_{status}").inc()
