"""
Recipe Manager Media Backend — Retention Sweeper
=================================================

What:  Deletes stored assets older than a retention window.
Why:   Uploads that were never attached to a recipe, or orphans left by
       disconnected clients, would otherwise accumulate forever.
How:   RetentionSweeper wraps UploadService.cleanup_old_images. When it runs
       is decided by a RetentionScheduler:

    StartupOnlyScheduler  one sweep when the app starts (default). Recurring
                          sweeps come from restarts or an external scheduler
                          calling POST /api/upload/cleanup.
    IntervalScheduler     one sweep at startup, then every N hours from an
                          asyncio task inside the process.

Selection: RETENTION_INTERVAL_HOURS=0 → StartupOnlyScheduler, >0 → IntervalScheduler.

A sweep that removes files also drops cached responses under the given
prefixes; scheduled sweeps bypass the cache middleware.
"""

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from app.exceptions import MediaServiceError
from app.services.cache import CacheBackend
from app.services.upload_service import UploadService

logger = logging.getLogger(__name__)


class RetentionSweeper:
    def __init__(
        self,
        upload_service: UploadService,
        older_than_days: int = 30,
        cache: Optional[CacheBackend] = None,
        cache_prefixes: Sequence[str] = (),
    ):
        self.upload_service = upload_service
        self.older_than_days = older_than_days
        self.cache = cache
        self.cache_prefixes = tuple(cache_prefixes)

    async def sweep(self, older_than_days: Optional[int] = None) -> int:
        days = older_than_days if older_than_days is not None else self.older_than_days
        deleted = await self.upload_service.cleanup_old_images(days)
        if deleted and self.cache is not None:
            dropped = sum(self.cache.delete_prefix(prefix) for prefix in self.cache_prefixes)
            logger.debug("Retention sweep invalidated %d cached response(s)", dropped)
        return deleted

    async def sweep_safely(self) -> int:
        """Sweep for background callers: failures are logged, result is 0."""
        try:
            return await self.sweep()
        except (MediaServiceError, OSError) as e:
            logger.error("Retention sweep failed: %s", str(e))
            return 0


class RetentionScheduler(Protocol):
    async def start(self, sweeper: RetentionSweeper) -> None: ...

    async def stop(self) -> None: ...


class StartupOnlyScheduler:
    """Runs a single sweep at startup."""

    async def start(self, sweeper: RetentionSweeper) -> None:
        deleted = await sweeper.sweep_safely()
        logger.info("Startup retention sweep removed %d file(s)", deleted)

    async def stop(self) -> None:
        return None


class IntervalScheduler:
    """Sweeps at startup and then every `interval_seconds` until stopped."""

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def start(self, sweeper: RetentionSweeper) -> None:
        deleted = await sweeper.sweep_safely()
        logger.info("Startup retention sweep removed %d file(s)", deleted)
        self._task = asyncio.create_task(self._run(sweeper))

    async def _run(self, sweeper: RetentionSweeper) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            deleted = await sweeper.sweep_safely()
            logger.info("Scheduled retention sweep removed %d file(s)", deleted)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


def build_scheduler(interval_hours: int) -> RetentionScheduler:
    if interval_hours > 0:
        return IntervalScheduler(interval_seconds=interval_hours * 3600)
    return StartupOnlyScheduler()
