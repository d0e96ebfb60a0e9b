"""
Recipe Manager Media Backend — Upload Service Unit Tests
=========================================================

What:  Tests for the upload orchestrator against a real temp-dir store.
Why:   The orchestrator owns every multi-step side effect: three files per
       upload, no partial leftovers, delete-by-any-variant and age sweeps.

Test Strategy:
    ✅ Successful upload writes exactly three files sharing one base name
    ✅ URLs, metadata and size come from the request bytes
    ✅ Rejected uploads never reach the transcoder or the disk
    ✅ A failed variant write removes the siblings already written
    ✅ Delete via any variant URL; a second delete returns False
    ✅ Cleanup deletes only files strictly older than the cutoff
    ✅ Average size rounds half up
    ✅ Base-name collisions are retried
"""

import os
import re
import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.exceptions import (
    ImageErrorKind,
    ImageProcessingError,
    InvalidFileTypeError,
    ValidationError,
)
from app.services.upload_service import (
    UploadState,
    base_name_from_filename,
    filename_from_url,
    generate_base_name,
    owner_tag,
)

BASE_NAME_RE = re.compile(r"^(?P<owner>[A-Za-z0-9-]+)_(?P<ts>\d{13})_(?P<token>[0-9a-f]{12})$")


def _files(service):
    return sorted(os.listdir(service.store.root))


class TestNamingHelpers:
    def test_owner_tag_anonymous(self):
        assert owner_tag(None) == "anonymous"
        assert owner_tag("") == "anonymous"

    def test_owner_tag_strips_unsafe_characters(self):
        assert owner_tag("user/../42") == "user42"
        assert owner_tag("../") == "anonymous"

    def test_generate_base_name_shape(self):
        match = BASE_NAME_RE.match(generate_base_name("abc-123"))
        assert match is not None
        assert match.group("owner") == "abc-123"

    def test_base_names_are_unique(self):
        assert len({generate_base_name() for _ in range(200)}) == 200

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("http://localhost:3001/uploads/x_1_ab_thumb.webp", "x_1_ab_thumb.webp"),
            ("/uploads/x_1_ab_original.webp?v=2", "x_1_ab_original.webp"),
            ("x_1_ab_optimized.webp", "x_1_ab_optimized.webp"),
        ],
    )
    def test_filename_from_url(self, url, expected):
        assert filename_from_url(url) == expected

    @pytest.mark.parametrize("suffix", ["_original", "_thumb", "_optimized"])
    def test_base_name_from_any_variant(self, suffix):
        assert base_name_from_filename(f"anonymous_1_abc{suffix}.webp") == "anonymous_1_abc"


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_writes_three_variants_with_one_base(
        self, upload_service, sample_image_bytes
    ):
        result = await upload_service.upload(
            sample_image_bytes, "image/jpeg", len(sample_image_bytes), user_id="user-123"
        )

        files = _files(upload_service)
        assert len(files) == 3
        assert files == sorted(
            f"{result.base_name}{s}.webp" for s in ("_original", "_thumb", "_optimized")
        )
        assert BASE_NAME_RE.match(result.base_name).group("owner") == "user-123"

    @pytest.mark.asyncio
    async def test_upload_result_urls_and_metadata(self, upload_service, sample_image_bytes):
        result = await upload_service.upload(sample_image_bytes, "image/jpeg")

        prefix = "http://localhost:3001/uploads/"
        assert result.original_url == f"{prefix}{result.base_name}_original.webp"
        assert result.thumbnail_url == f"{prefix}{result.base_name}_thumb.webp"
        assert result.optimized_url == f"{prefix}{result.base_name}_optimized.webp"
        assert result.metadata.size == len(sample_image_bytes)
        assert (result.metadata.width, result.metadata.height) == (2000, 1000)
        assert result.metadata.format == "jpeg"
        assert result.states == [
            UploadState.RECEIVED,
            UploadState.VALIDATED,
            UploadState.TRANSCODING,
            UploadState.PERSISTED,
            UploadState.RESPONDED,
        ]
        assert upload_service.monitoring.uploads_processed == 1

    @pytest.mark.asyncio
    async def test_anonymous_upload_tag(self, upload_service, make_image):
        result = await upload_service.upload(make_image(10, 10, fmt="PNG"), "image/png")
        assert result.base_name.startswith("anonymous_")

    @pytest.mark.asyncio
    async def test_rejected_type_never_reaches_transcoder(self, upload_service, make_image):
        upload_service.transcoder = MagicMock()

        with pytest.raises(InvalidFileTypeError):
            await upload_service.upload(make_image(10, 10, fmt="GIF"), "image/gif")

        upload_service.transcoder.decode.assert_not_called()
        assert _files(upload_service) == []

    @pytest.mark.asyncio
    async def test_empty_payload_rejected(self, upload_service):
        with pytest.raises(ValidationError):
            await upload_service.upload(b"", "image/jpeg", 0)
        assert _files(upload_service) == []

    @pytest.mark.asyncio
    async def test_corrupt_bytes_leave_nothing_on_disk(self, upload_service):
        with pytest.raises(ImageProcessingError) as exc_info:
            await upload_service.upload(b"\x89PNG not really", "image/png")

        assert exc_info.value.kind is ImageErrorKind.UNSUPPORTED_FORMAT
        assert _files(upload_service) == []
        assert upload_service.monitoring.uploads_failed == 1

    @pytest.mark.asyncio
    async def test_partial_write_failure_removes_siblings(
        self, upload_service, sample_image_bytes
    ):
        real_write = upload_service.store.write

        async def flaky_write(base, suffix, data):
            if suffix == "_thumb":
                raise ImageProcessingError(ImageErrorKind.INSUFFICIENT_STORAGE)
            return await real_write(base, suffix, data)

        with patch.object(upload_service.store, "write", side_effect=flaky_write):
            with pytest.raises(ImageProcessingError) as exc_info:
                await upload_service.upload(sample_image_bytes, "image/jpeg")

        assert exc_info.value.kind is ImageErrorKind.INSUFFICIENT_STORAGE
        assert exc_info.value.status_code == 500
        assert _files(upload_service) == []

    @pytest.mark.asyncio
    async def test_unexpected_variant_error_is_wrapped(self, upload_service, sample_image_bytes):
        with patch.object(
            upload_service.store, "write", AsyncMock(side_effect=RuntimeError("disk gremlin"))
        ):
            with pytest.raises(ImageProcessingError) as exc_info:
                await upload_service.upload(sample_image_bytes, "image/jpeg")

        assert exc_info.value.kind is ImageErrorKind.PROCESSING_FAILED

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_mask_original_error(
        self, upload_service, sample_image_bytes
    ):
        upload_service.store.write = AsyncMock(
            side_effect=ImageProcessingError(ImageErrorKind.RESOURCE_EXHAUSTED)
        )
        upload_service.store.delete = AsyncMock(side_effect=OSError("cannot delete"))

        with pytest.raises(ImageProcessingError) as exc_info:
            await upload_service.upload(sample_image_bytes, "image/jpeg")

        assert exc_info.value.kind is ImageErrorKind.RESOURCE_EXHAUSTED

    @pytest.mark.asyncio
    async def test_base_name_collision_regenerated(self, upload_service, make_image):
        taken = "anonymous_1700000000000_aaaaaaaaaaaa"
        await upload_service.store.write(taken, "_original", b"existing")

        names = iter([taken, "anonymous_1700000000001_bbbbbbbbbbbb"])
        with patch(
            "app.services.upload_service.generate_base_name", side_effect=lambda _: next(names)
        ):
            result = await upload_service.upload(make_image(20, 20), "image/jpeg")

        assert result.base_name == "anonymous_1700000000001_bbbbbbbbbbbb"
        assert (upload_service.store.root / f"{taken}_original.webp").read_bytes() == b"existing"


class TestDeleteAndInfo:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("variant", ["original_url", "thumbnail_url", "optimized_url"])
    async def test_delete_via_any_variant(self, upload_service, sample_image_bytes, variant):
        result = await upload_service.upload(sample_image_bytes, "image/jpeg")

        assert await upload_service.delete_image(getattr(result, variant)) is True
        assert _files(upload_service) == []
        assert await upload_service.delete_image(getattr(result, variant)) is False

    @pytest.mark.asyncio
    async def test_delete_unknown_url(self, upload_service):
        assert await upload_service.delete_image("http://localhost:3001/uploads/") is False
        assert await upload_service.delete_image("http://x/uploads/missing_thumb.webp") is False

    @pytest.mark.asyncio
    async def test_image_info(self, upload_service, sample_image_bytes):
        result = await upload_service.upload(sample_image_bytes, "image/jpeg")

        info = await upload_service.get_image_info(result.thumbnail_url)
        assert info.exists is True
        assert (info.width, info.height, info.format) == (300, 300, "webp")
        assert info.size == os.path.getsize(
            upload_service.store.root / f"{result.base_name}_thumb.webp"
        )

    @pytest.mark.asyncio
    async def test_image_info_missing(self, upload_service):
        info = await upload_service.get_image_info("http://x/uploads/none_original.webp")
        assert info.exists is False


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_cleanup_deletes_only_strictly_older(self, upload_service):
        store = upload_service.store
        now = time.time()
        day = 24 * 3600
        ages = {"ancient": 40 * day, "old": 31 * day, "fresh": 29 * day, "new": 0}
        for name, age in ages.items():
            path = await store.write(name, "_thumb", b"x")
            os.utime(path, (now - age, now - age))

        deleted = await upload_service.cleanup_old_images(30)

        assert deleted == 2
        assert _files(upload_service) == ["fresh_thumb.webp", "new_thumb.webp"]
        assert upload_service.monitoring.files_swept == 2

    @pytest.mark.asyncio
    async def test_cleanup_continues_after_per_file_error(self, upload_service):
        store = upload_service.store
        old = time.time() - 90 * 24 * 3600
        for name in ("a", "b"):
            path = await store.write(name, "_thumb", b"x")
            os.utime(path, (old, old))

        real_delete_file = store.delete_file

        async def failing_delete(filename):
            if filename.startswith("a"):
                raise PermissionError("locked")
            return await real_delete_file(filename)

        with patch.object(store, "delete_file", side_effect=failing_delete):
            deleted = await upload_service.cleanup_old_images(30)

        assert deleted == 1
        assert _files(upload_service) == ["a_thumb.webp"]

    @pytest.mark.asyncio
    async def test_cleanup_keeps_file_exactly_at_cutoff(self, upload_service):
        store = upload_service.store
        now = 1_700_000_000
        cutoff = now - 30 * 24 * 3600
        for name, mtime in (("at", cutoff), ("before", cutoff - 1), ("after", cutoff + 1)):
            path = await store.write(name, "_thumb", b"x")
            os.utime(path, (mtime, mtime))

        deleted = await upload_service.cleanup_old_images(
            30, now=datetime.fromtimestamp(now, tz=timezone.utc)
        )

        assert deleted == 1
        assert _files(upload_service) == ["after_thumb.webp", "at_thumb.webp"]

    @pytest.mark.asyncio
    async def test_upload_stats(self, upload_service):
        await upload_service.store.write("a", "_thumb", b"x" * 10)
        await upload_service.store.write("b", "_thumb", b"x" * 21)

        stats = await upload_service.get_upload_stats()
        assert (stats.total_files, stats.total_size, stats.average_size) == (2, 31, 16)

    @pytest.mark.asyncio
    async def test_upload_stats_average_rounds_half_up(self, upload_service):
        await upload_service.store.write("a", "_thumb", b"x" * 10)
        await upload_service.store.write("b", "_thumb", b"x" * 15)

        stats = await upload_service.get_upload_stats()
        assert stats.average_size == 13

    @pytest.mark.asyncio
    async def test_upload_stats_empty(self, upload_service):
        stats = await upload_service.get_upload_stats()
        assert (stats.total_files, stats.total_size, stats.average_size) == (0, 0, 0)
