"""
Recipe Manager Media Backend — Upload Service (Orchestrator)
=============================================================

What:  Sequences validate → decode → transcode → persist → build URLs for an
       uploaded image, plus delete / info / stats / retention cleanup.
Why:   Keeps every multi-step side effect and its failure translation in one
       place, independent of HTTP concerns.
How:   Composes the validation functions, ImageTranscoder and an AssetStore.
       Blocking Pillow work runs in worker threads (asyncio.to_thread).
Who:   Called by the upload routes and the retention sweeper.

Per-request state machine:
    Received ──▶ Validated ──▶ Transcoding ──▶ Persisted ──▶ Responded
       │                           │               │
       ▼                           ▼               ▼
    Rejected                     Failed          Failed

    Rejected: validation failure, nothing touched on disk
    Failed:   any variant failed; siblings already written are deleted
              best-effort and that cleanup can never replace the original error

Concurrency:
    The three variants render and write concurrently and are joined before
    the response (barrier). The join is shielded: if the client disconnects,
    in-flight writes still finish, and any orphans age out via retention.
"""

import asyncio
import enum
import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath
from typing import List, Optional, Sequence
from urllib.parse import unquote, urlparse

from app.config import settings
from app.exceptions import ImageErrorKind, ImageProcessingError, ValidationError
from app.services.asset_store import AssetMetadata, AssetStore, StoreStats, variant_filename
from app.services.image_transcoder import (
    OPTIMIZED,
    ORIGINAL,
    OUTPUT_EXTENSION,
    THUMBNAIL,
    VARIANTS,
    ImageTranscoder,
    SourceImage,
    VariantSpec,
    image_transcoder,
)
from app.services.monitoring_service import MonitoringService
from app.services.validation import ensure_valid_upload

logger = logging.getLogger(__name__)

ANONYMOUS_OWNER = "anonymous"
UPLOADS_URL_PATH = "/uploads"

# Attempts at finding an unused base name before accepting the last candidate
BASE_NAME_ATTEMPTS = 3

_VARIANT_SUFFIX_RE = re.compile(
    "(" + "|".join(re.escape(v.suffix) for v in VARIANTS) + ")" + re.escape(OUTPUT_EXTENSION) + "$"
)
_OWNER_TAG_RE = re.compile(r"[^A-Za-z0-9-]")


class UploadState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    TRANSCODING = "transcoding"
    PERSISTED = "persisted"
    RESPONDED = "responded"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class ImageMetadata:
    width: int
    height: int
    size: int
    format: str


@dataclass
class ProcessedImage:
    original_url: str
    thumbnail_url: str
    optimized_url: str
    metadata: ImageMetadata
    base_name: str = ""
    states: List[UploadState] = field(default_factory=list)


def owner_tag(user_id: Optional[str]) -> str:
    """Filename-safe tag for the uploader; anonymous uploads share one tag."""
    if not user_id:
        return ANONYMOUS_OWNER
    return _OWNER_TAG_RE.sub("", user_id) or ANONYMOUS_OWNER


def generate_base_name(user_id: Optional[str] = None) -> str:
    """{ownerTag}_{timestampMillis}_{randomToken}"""
    timestamp = int(time.time() * 1000)
    return f"{owner_tag(user_id)}_{timestamp}_{secrets.token_hex(6)}"


def filename_from_url(image_url: str) -> str:
    """Last path segment of an asset URL (or bare filename)."""
    path = unquote(urlparse(image_url).path)
    return PurePosixPath(path).name


def base_name_from_filename(filename: str) -> str:
    return _VARIANT_SUFFIX_RE.sub("", filename)


class UploadService:
    """
    Upload orchestrator.

    Args:
        store: Where derived assets live
        transcoder: Pillow wrapper (stateless; shared singleton by default)
        monitoring: Optional counters sink
        base_url: Scheme/host/port prefix for asset URLs
        variants: Variant specs to produce (original, thumbnail, optimized)
    """

    def __init__(
        self,
        store: AssetStore,
        transcoder: Optional[ImageTranscoder] = None,
        monitoring: Optional[MonitoringService] = None,
        base_url: Optional[str] = None,
        variants: Sequence[VariantSpec] = VARIANTS,
    ):
        self.store = store
        self.transcoder = transcoder or image_transcoder
        self.monitoring = monitoring
        self.base_url = (base_url or settings.public_base_url).rstrip("/")
        self.variants = tuple(variants)

    # ── Upload ────────────────────────────────────────────────────────────

    async def upload(
        self,
        content: Optional[bytes],
        content_type: Optional[str],
        declared_size: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> ProcessedImage:
        """
        Validate an incoming file part, then process it.

        Raises:
            ValidationError (and subclasses): request rejected, nothing written
            ImageProcessingError: decode/transcode/persist failed
        """
        states = [UploadState.RECEIVED]
        try:
            ensure_valid_upload(content_type, declared_size, content)
        except ValidationError as e:
            states.append(UploadState.REJECTED)
            logger.info("Upload rejected: %s", e.message)
            raise
        states.append(UploadState.VALIDATED)
        return await self.process_image(content, user_id=user_id, states=states)

    async def process_image(
        self,
        content: bytes,
        user_id: Optional[str] = None,
        states: Optional[List[UploadState]] = None,
    ) -> ProcessedImage:
        """
        Transcode validated bytes into three variants and persist them.

        Returns:
            ProcessedImage with absolute URLs. metadata.size is the request's
            byte length; metadata.format is the source format.

        Raises:
            ImageProcessingError with a kind from ImageErrorKind.
        """
        states = states if states is not None else [UploadState.VALIDATED]
        states.append(UploadState.TRANSCODING)

        try:
            source = await asyncio.to_thread(self.transcoder.decode, content)
            base = await self._allocate_base_name(user_id)
            await asyncio.shield(self._write_variants(base, source))
        except ImageProcessingError as e:
            states.append(UploadState.FAILED)
            self._record_upload(False)
            logger.error(
                "Image processing failed (%s): %s | size=%d",
                e.kind.value,
                e.context,
                len(content),
            )
            raise

        states.append(UploadState.PERSISTED)
        result = ProcessedImage(
            original_url=self.url_for(variant_filename(base, ORIGINAL.suffix)),
            thumbnail_url=self.url_for(variant_filename(base, THUMBNAIL.suffix)),
            optimized_url=self.url_for(variant_filename(base, OPTIMIZED.suffix)),
            metadata=ImageMetadata(
                width=source.width,
                height=source.height,
                size=len(content),
                format=source.format,
            ),
            base_name=base,
            states=states,
        )
        states.append(UploadState.RESPONDED)
        self._record_upload(True)
        logger.info(
            "Image processed: base=%s source=%dx%d %s (%d bytes)",
            base,
            source.width,
            source.height,
            source.format,
            len(content),
        )
        return result

    async def _allocate_base_name(self, user_id: Optional[str]) -> str:
        candidate = generate_base_name(user_id)
        for _ in range(BASE_NAME_ATTEMPTS - 1):
            if not await self.store.exists(variant_filename(candidate, ORIGINAL.suffix)):
                break
            logger.warning("Base name collision on %s, regenerating", candidate)
            candidate = generate_base_name(user_id)
        return candidate

    async def _render_and_write(self, base: str, source: SourceImage, spec: VariantSpec) -> None:
        variant = await asyncio.to_thread(self.transcoder.render, source, spec)
        await self.store.write(base, spec.suffix, variant.data)

    async def _write_variants(self, base: str, source: SourceImage) -> None:
        results = await asyncio.gather(
            *(self._render_and_write(base, source, spec) for spec in self.variants),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if not failures:
            return

        await self._discard_partial(base)
        first = failures[0]
        if isinstance(first, ImageProcessingError):
            raise first
        raise ImageProcessingError(
            ImageErrorKind.PROCESSING_FAILED,
            context={"stage": "variants", "error": repr(first)},
        ) from first

    async def _discard_partial(self, base: str) -> None:
        # Best-effort: a cleanup failure must not mask the upload failure
        try:
            await self.store.delete(base)
        except Exception as e:
            logger.warning("Failed to clean up partial upload %s: %s", base, str(e))

    def url_for(self, filename: str) -> str:
        return f"{self.base_url}{UPLOADS_URL_PATH}/{filename}"

    # ── Delete / Info ─────────────────────────────────────────────────────

    async def delete_image(self, image_url: str) -> bool:
        """
        Delete all three variants given the URL of any one of them.

        Returns:
            False if none of the variant files existed.
        """
        base = base_name_from_filename(filename_from_url(image_url))
        if not base:
            return False
        removed = await self.store.delete(base)
        if self.monitoring and removed:
            self.monitoring.record_deleted(removed)
        return removed > 0

    async def get_image_info(self, image_url: str) -> AssetMetadata:
        filename = filename_from_url(image_url)
        if not filename:
            return AssetMetadata(exists=False)
        return await self.store.read_metadata(filename)

    # ── Maintenance ───────────────────────────────────────────────────────

    async def cleanup_old_images(
        self, older_than_days: int = 30, now: Optional[datetime] = None
    ) -> int:
        """
        Delete every stored file whose mtime is strictly older than the cutoff.

        A file exactly at the cutoff is kept. Per-file failures are logged and
        counted as not deleted; they never abort the sweep.

        Returns:
            Number of files actually removed.
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)
        deleted = 0

        for stored in await self.store.list_all():
            if stored.modified_at >= cutoff:
                continue
            try:
                if await self.store.delete_file(stored.name):
                    deleted += 1
            except OSError as e:
                logger.warning("Cleanup could not delete %s: %s", stored.name, str(e))

        if self.monitoring:
            self.monitoring.record_swept(deleted)
        logger.info("Cleanup removed %d file(s) older than %d day(s)", deleted, older_than_days)
        return deleted

    async def get_upload_stats(self) -> StoreStats:
        files = await self.store.list_all()
        total = sum(f.size for f in files)
        # Half rounds up: 12.5 -> 13
        average = int(total / len(files) + 0.5) if files else 0
        return StoreStats(total_files=len(files), total_size=total, average_size=average)

    def _record_upload(self, success: bool) -> None:
        if self.monitoring:
            self.monitoring.record_upload(success)
