"""
Recipe Manager Media Backend — Upload Rate Limiting Middleware
===============================================================

What:  Per-client sliding window limiter in front of the upload routes.
Why:   Transcoding is the most expensive thing this service does; one client
       looping on POST /api/upload/image could keep every worker thread busy.
How:   SlidingWindowLimiter keeps a deque of hit times per client IP.
       RateLimitMiddleware consults it only for paths under `prefixes`.

    hit(client, now)
        drop timestamps <= now - window
        len >= limit  → return seconds until the oldest one leaves the window
        otherwise     → record now, return None

Scope:
    Single process only; each worker keeps its own windows.
"""

import logging
import math
import time
from collections import deque
from typing import Deque, Dict, Optional, Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Idle clients are purged every this many hits
PURGE_EVERY = 1000


class SlidingWindowLimiter:
    def __init__(self, max_requests: int, window_seconds: float):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = {}
        self._total = 0

    def hit(self, client: str, now: float) -> Optional[int]:
        """Record a request; returns Retry-After seconds when over the limit."""
        window_start = now - self.window_seconds
        hits = self._hits.setdefault(client, deque())
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.max_requests:
            return max(1, math.ceil(hits[0] + self.window_seconds - now))

        hits.append(now)
        self._total += 1
        if self._total % PURGE_EVERY == 0:
            self.purge(window_start)
        return None

    def purge(self, window_start: float) -> int:
        idle = [c for c, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for client in idle:
            del self._hits[client]
        if idle:
            logger.debug("Purged %d idle rate limit windows", len(idle))
        return len(idle)

    def __len__(self) -> int:
        return len(self._hits)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Args:
        prefixes: Path prefixes subject to limiting
        max_requests: Override settings.rate_limit_requests
        window_seconds: Override settings.rate_limit_window
    """

    def __init__(
        self,
        app,
        prefixes: Sequence[str] = ("/api/upload",),
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        super().__init__(app)
        self.prefixes = tuple(prefixes)
        self.limiter = SlidingWindowLimiter(
            max_requests or settings.rate_limit_requests,
            window_seconds or settings.rate_limit_window,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not request.url.path.startswith(self.prefixes):
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        retry_after = self.limiter.hit(client, time.time())
        if retry_after is None:
            return await call_next(request)

        logger.warning(
            "Upload rate limit hit by %s (%d requests / %ss)",
            client,
            self.limiter.max_requests,
            self.limiter.window_seconds,
        )
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": "Too many requests",
                "message": (
                    f"Too many upload requests. Please wait {retry_after} seconds before retrying."
                ),
                "request_id": request_id_var.get(""),
            },
            headers={"Retry-After": str(retry_after)},
        )
