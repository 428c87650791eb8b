"""
Request Logging Middleware

Wraps every management API request in a correlation ID (taken from an
incoming ``X-Request-ID`` header when a caller supplies one), logs one line
per completed request and records Prometheus request metrics.

Metrics are labelled with the matched route template
(``/api/v1/motion/listeners/{name}/start``), not the raw path.
"""
import time
import uuid
import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from motion_funnel.core.logging_config import set_correlation_id, clear_correlation_id
from motion_funnel.core.metrics import record_request_metrics

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Polled endpoints, metrics only
QUIET_PATHS = frozenset({'/health', '/metrics'})


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    if not template:
        return request.url.path

    # Depending on the FastAPI version, routes of an included router report
    # their path with or without the include_router prefix
    segments = request.url.path.rstrip("/").split("/")
    depth = len(template.rstrip("/").split("/"))
    if len(segments) > depth:
        return "/".join(segments[:len(segments) - depth + 1]) + template
    return template


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Correlation ID, completion log line and metrics for each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = set_correlation_id(request_id)
        request.state.request_id = request_id
        started = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} raised {type(e).__name__}: {e}",
                exc_info=True,
                extra={"event_type": "request_error", "method": request.method, "path": request.url.path}
            )
            raise
        finally:
            elapsed = time.perf_counter() - started
            path = _route_template(request)
            record_request_metrics(request.method, path, status_code, elapsed)

            if request.url.path not in QUIET_PATHS:
                level = logging.INFO
                if status_code >= 500:
                    level = logging.ERROR
                elif status_code >= 400:
                    level = logging.WARNING
                logger.log(
                    level,
                    f"{request.method} {request.url.path} -> {status_code}",
                    extra={
                        "event_type": "request_complete",
                        "method": request.method,
                        "path": path,
                        "status_code": status_code,
                        "response_time_ms": round(elapsed * 1000, 2),
                    }
                )
            clear_correlation_id(token)
