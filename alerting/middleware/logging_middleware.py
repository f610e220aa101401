"""
Request logging middleware.

Assigns each request a request id (reusing an incoming X-Request-ID), makes it
available to every log record through contextvars, echoes it back in the
response, and records one completion log line and the request metrics.
"""
import time
import uuid
import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from alerting.core.logging_config import set_request_id, clear_request_id
from alerting.core.metrics import record_request_metrics

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes and docs are not worth a log line per hit
QUIET_PATHS = frozenset({'/health', '/metrics', '/docs', '/redoc', '/openapi.json'})


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Correlates logs per request and times every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = set_request_id(request_id)
        try:
            return await self._timed(request, call_next, request_id)
        finally:
            clear_request_id(token)

    async def _timed(self, request: Request, call_next: Callable, request_id: str) -> Response:
        started = time.perf_counter()
        context = {
            "method": request.method,
            "path": request.url.path,
            "caller_id": request.headers.get("X-User-Id"),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            logger.error(
                "Request failed with exception",
                extra={
                    "event_type": "request_error",
                    **context,
                    "response_time_ms": round(elapsed * 1000, 2),
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True
            )
            record_request_metrics(request.method, 500, elapsed)
            raise

        elapsed = time.perf_counter() - started
        response.headers[REQUEST_ID_HEADER] = request_id

        if context["path"] not in QUIET_PATHS:
            logger.log(
                _level_for(response.status_code),
                "Request completed",
                extra={
                    "event_type": "request_complete",
                    **context,
                    "status_code": response.status_code,
                    "response_time_ms": round(elapsed * 1000, 2),
                }
            )

        record_request_metrics(request.method, response.status_code, elapsed)
        return response
