"""
Recipe Manager Media Backend — Retention Tests
===============================================

What:  Tests for RetentionSweeper and the schedulers that drive it.

Test Strategy:
    ✅ Sweeper uses its default window unless one is passed
    ✅ sweep_safely swallows storage failures (startup must not crash)
    ✅ A sweep that deletes files drops cached image-info responses
    ✅ StartupOnlyScheduler sweeps exactly once
    ✅ IntervalScheduler sweeps at start, repeats, and stops cleanly
    ✅ build_scheduler picks by interval
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.exceptions import FileStorageError
from app.services.cache import MemoryCache
from app.services.retention import (
    IntervalScheduler,
    RetentionSweeper,
    StartupOnlyScheduler,
    build_scheduler,
)


@pytest.fixture
def fake_upload_service():
    service = MagicMock()
    service.cleanup_old_images = AsyncMock(return_value=4)
    return service


class TestRetentionSweeper:
    @pytest.mark.asyncio
    async def test_default_window(self, fake_upload_service):
        sweeper = RetentionSweeper(fake_upload_service, older_than_days=30)
        assert await sweeper.sweep() == 4
        fake_upload_service.cleanup_old_images.assert_awaited_once_with(30)

    @pytest.mark.asyncio
    async def test_explicit_window(self, fake_upload_service):
        sweeper = RetentionSweeper(fake_upload_service, older_than_days=30)
        await sweeper.sweep(7)
        fake_upload_service.cleanup_old_images.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_sweep_safely_swallows_storage_errors(self, fake_upload_service):
        fake_upload_service.cleanup_old_images.side_effect = FileStorageError("unreadable")
        sweeper = RetentionSweeper(fake_upload_service)
        assert await sweeper.sweep_safely() == 0

    @pytest.mark.asyncio
    async def test_sweep_propagates_errors(self, fake_upload_service):
        fake_upload_service.cleanup_old_images.side_effect = FileStorageError("unreadable")
        with pytest.raises(FileStorageError):
            await RetentionSweeper(fake_upload_service).sweep()

    @pytest.mark.asyncio
    async def test_real_sweep_against_store(self, upload_service):
        await upload_service.store.write("fresh", "_thumb", b"x")
        sweeper = RetentionSweeper(upload_service, older_than_days=1)
        assert await sweeper.sweep() == 0

    @pytest.mark.asyncio
    async def test_sweep_invalidates_cached_info(self, fake_upload_service):
        cache = MemoryCache()
        cache.set("/api/upload/image/info?imageUrl=a", "cached", ttl=300)
        cache.set("/health", "cached", ttl=300)
        sweeper = RetentionSweeper(
            fake_upload_service, cache=cache, cache_prefixes=("/api/upload/image/info",)
        )

        await sweeper.sweep()

        assert cache.get("/api/upload/image/info?imageUrl=a") is None
        assert cache.get("/health") == "cached"

    @pytest.mark.asyncio
    async def test_empty_sweep_keeps_cache(self, fake_upload_service):
        fake_upload_service.cleanup_old_images.return_value = 0
        cache = MemoryCache()
        cache.set("/api/upload/image/info?imageUrl=a", "cached", ttl=300)
        sweeper = RetentionSweeper(
            fake_upload_service, cache=cache, cache_prefixes=("/api/upload/image/info",)
        )

        assert await sweeper.sweep() == 0
        assert cache.get("/api/upload/image/info?imageUrl=a") == "cached"

    @pytest.mark.asyncio
    async def test_scheduled_sweep_invalidates_cache(self, fake_upload_service):
        cache = MemoryCache()
        cache.set("/api/upload/image/info?imageUrl=a", "cached", ttl=300)
        sweeper = RetentionSweeper(
            fake_upload_service, cache=cache, cache_prefixes=("/api/upload/image/info",)
        )

        await StartupOnlyScheduler().start(sweeper)

        assert len(cache) == 0


class TestSchedulers:
    @pytest.mark.asyncio
    async def test_startup_only(self, fake_upload_service):
        scheduler = StartupOnlyScheduler()
        await scheduler.start(RetentionSweeper(fake_upload_service))
        await scheduler.stop()
        assert fake_upload_service.cleanup_old_images.await_count == 1

    @pytest.mark.asyncio
    async def test_interval_repeats_until_stopped(self, fake_upload_service):
        scheduler = IntervalScheduler(interval_seconds=0.01)
        await scheduler.start(RetentionSweeper(fake_upload_service))
        await asyncio.sleep(0.1)
        await scheduler.stop()

        calls = fake_upload_service.cleanup_old_images.await_count
        assert calls >= 2

        await asyncio.sleep(0.05)
        assert fake_upload_service.cleanup_old_images.await_count == calls

    @pytest.mark.asyncio
    async def test_interval_stop_without_start(self):
        await IntervalScheduler(interval_seconds=60).stop()

    def test_build_scheduler(self):
        assert isinstance(build_scheduler(0), StartupOnlyScheduler)
        scheduler = build_scheduler(6)
        assert isinstance(scheduler, IntervalScheduler)
        assert scheduler.interval_seconds == 6 * 3600
