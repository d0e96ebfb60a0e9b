"""
Recipe Manager Media Backend — Access Log Middleware
=====================================================

What:  One access-log line per request, plus the request counters behind
       /metrics and /health/detailed.
How:   Times call_next, then hands the outcome to MonitoringService (if the
       app has one) and to the "recipe_media.access" logger.

Privacy:
    Logged:     method, path, status, duration, request ID, client IP,
                declared upload size
    Not logged: query strings (they carry image URLs), bodies, image bytes,
                Authorization headers
"""

import logging
import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("recipe_media.access")

# Health-check endpoints: counted in metrics but not written to the access log
QUIET_PATHS = {"/health", "/live", "/ready"}


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def _declared_length(request: Request) -> Optional[int]:
    value = request.headers.get("content-length")
    return int(value) if value and value.isdigit() else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        monitoring = getattr(request.app.state, "monitoring", None)
        if monitoring is not None:
            monitoring.record_request(elapsed_ms, response.status_code)

        path = request.url.path
        if path not in QUIET_PATHS:
            self._log(request, path, response.status_code, elapsed_ms)
        return response

    @staticmethod
    def _log(request: Request, path: str, status: int, elapsed_ms: float) -> None:
        rid = request_id_var.get("")
        client = request.client.host if request.client else "-"
        length = _declared_length(request)

        logger.log(
            level_for_status(status),
            "[%s] %s %s -> %d in %.1fms (client=%s, bytes_in=%s)",
            rid,
            request.method,
            path,
            status,
            elapsed_ms,
            client,
            length if length is not None else "-",
            extra={
                "request_id": rid,
                "http_method": request.method,
                "http_path": path,
                "http_status": status,
                "elapsed_ms": round(elapsed_ms, 2),
                "client_ip": client,
                "bytes_in": length,
            },
        )
