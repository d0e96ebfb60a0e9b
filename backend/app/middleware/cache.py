"""
Recipe Manager Media Backend — Response Cache Middleware
=========================================================

What:  Caches successful GET responses for selected path prefixes and
       invalidates them when a mutating request under a watched prefix succeeds.
How:   Cache key is the path plus query string. Responses carry
       X-Cache: HIT or MISS. The backend is injected (see services/cache.py).

Only unauthenticated, user-independent endpoints belong in `cached_prefixes`:
the key does not include the caller's identity.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.services.cache import CacheBackend

logger = logging.getLogger(__name__)

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Expired entries are swept every this many cache writes
SWEEP_EVERY = 500


@dataclass
class CachedResponse:
    status_code: int
    body: bytes
    headers: Dict[str, str]
    media_type: str


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        cache: CacheBackend,
        ttl: float,
        cached_prefixes: Sequence[str],
        invalidate_prefixes: Sequence[str],
        enabled: bool = True,
    ):
        super().__init__(app)
        self.cache = cache
        self.ttl = ttl
        self.cached_prefixes = tuple(cached_prefixes)
        self.invalidate_prefixes = tuple(invalidate_prefixes)
        self.enabled = enabled
        self._writes = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.enabled:
            return await call_next(request)

        path = request.url.path

        if request.method in MUTATING_METHODS and path.startswith(self.invalidate_prefixes):
            response = await call_next(request)
            if 200 <= response.status_code < 300:
                for prefix in self.cached_prefixes:
                    self.cache.delete_prefix(prefix)
            return response

        if request.method != "GET" or not path.startswith(self.cached_prefixes):
            return await call_next(request)

        key = path + ("?" + request.url.query if request.url.query else "")
        cached = self.cache.get(key)
        if cached is not None:
            response = Response(
                content=cached.body,
                status_code=cached.status_code,
                headers=cached.headers,
                media_type=cached.media_type,
            )
            response.headers["X-Cache"] = "HIT"
            return response

        response = await call_next(request)
        if not 200 <= response.status_code < 300:
            response.headers["X-Cache"] = "MISS"
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        headers = {
            k: v
            for k, v in response.headers.items()
            if k.lower() not in ("content-length", "x-request-id")
        }
        media_type = response.media_type or response.headers.get("content-type", "application/json")
        self.cache.set(
            key,
            CachedResponse(
                status_code=response.status_code,
                body=body,
                headers=headers,
                media_type=media_type,
            ),
            self.ttl,
        )
        self._writes += 1
        if self._writes % SWEEP_EVERY == 0:
            swept = self.cache.sweep()
            if swept:
                logger.debug("Swept %d expired cache entries", swept)

        fresh = Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=media_type,
        )
        fresh.headers["X-Cache"] = "MISS"
        return fresh
