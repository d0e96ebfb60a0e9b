"""
Recipe Manager Media Backend — Asset Store
===========================================

What:  Durable byte storage for derived image assets in one flat directory.
Why:   Keeps every filesystem side effect behind one interface, so the
       orchestrator never touches paths directly and a future store backed by
       a metadata table can replace this one without changing callers.
How:   Async file I/O via aiofiles; identity is encoded in the filename.

Naming:
    {base}_original.webp
    {base}_thumb.webp
    {base}_optimized.webp

    There is no index of which assets exist. Deleting one upload derives the
    sibling filenames from the base name by suffix.

Concurrency:
    No locking. Base names are unique per request and variants are written
    once, then only ever deleted wholesale.
"""

import asyncio
import errno
import logging
import os
import stat as stat_module
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import aiofiles
import aiofiles.os

from app.config import settings
from app.exceptions import FileStorageError, ImageProcessingError
from app.services.image_transcoder import (
    OUTPUT_EXTENSION,
    VARIANTS,
    ImageTranscoder,
    classify_error,
    image_transcoder,
)

logger = logging.getLogger(__name__)

# Names that would address the upload directory itself or its parent
UNSAFE_NAMES = frozenset({"", ".", ".."})


@dataclass
class StoredFile:
    name: str
    size: int
    modified_at: datetime


@dataclass
class AssetMetadata:
    """Result of read_metadata; `exists=False` carries no other fields."""

    exists: bool
    size: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None


@dataclass
class StoreStats:
    total_files: int
    total_size: int
    average_size: int


def variant_filename(base: str, suffix: str) -> str:
    return f"{base}{suffix}{OUTPUT_EXTENSION}"


class AssetStore(Protocol):
    """Operations the upload orchestrator needs from a store."""

    async def write(self, base: str, suffix: str, data: bytes) -> Path: ...

    async def exists(self, filename: str) -> bool: ...

    async def read_metadata(self, filename: str) -> AssetMetadata: ...

    async def delete(self, base: str) -> int: ...

    async def delete_file(self, filename: str) -> bool: ...

    async def list_all(self) -> List[StoredFile]: ...


class LocalAssetStore:
    """
    AssetStore over a local directory.

    Args:
        root: Override the configured upload directory (used in tests).
        transcoder: Used only to read image dimensions for read_metadata.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        transcoder: Optional[ImageTranscoder] = None,
        suffixes: Optional[Sequence[str]] = None,
    ):
        self.root = Path(root or settings.upload_dir).resolve()
        self.transcoder = transcoder or image_transcoder
        self.suffixes = tuple(suffixes or (v.suffix for v in VARIANTS))
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("LocalAssetStore initialized with root=%s", self.root)

    def path_for(self, filename: str) -> Path:
        """
        Path of a stored file. Any directory component is stripped.

        Raises:
            FileNotFoundError for names that resolve to the directory itself
            or its parent ("", ".", "..").
        """
        name = Path(filename).name
        if name in UNSAFE_NAMES:
            raise FileNotFoundError(errno.ENOENT, "Not a stored file name", filename)
        return self.root / name

    async def write(self, base: str, suffix: str, data: bytes) -> Path:
        """
        Write one variant. Last write wins; no collision detection.

        Raises:
            ImageProcessingError(INSUFFICIENT_STORAGE | PROCESSING_FAILED) on OSError
        """
        path = self.path_for(variant_filename(base, suffix))
        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to write asset %s: %s", path, str(e))
            raise ImageProcessingError(
                classify_error(e), context={"stage": "write", "path": str(path), "os_error": str(e)}
            ) from e

        logger.debug("Asset stored: %s (%d bytes)", path.name, len(data))
        return path

    async def exists(self, filename: str) -> bool:
        try:
            path = self.path_for(filename)
        except FileNotFoundError:
            return False
        return await aiofiles.os.path.isfile(path)

    async def read_metadata(self, filename: str) -> AssetMetadata:
        """
        Size plus decoded dimensions of a stored file.

        A missing file (or one that vanished mid-read) reports exists=False
        rather than raising, as does anything that is not a regular file.
        """
        try:
            path = self.path_for(filename)
            stat = await aiofiles.os.stat(path)
        except FileNotFoundError:
            return AssetMetadata(exists=False)
        if not stat_module.S_ISREG(stat.st_mode):
            return AssetMetadata(exists=False)

        try:
            width, height, fmt = await asyncio.to_thread(self.transcoder.read_dimensions, path)
        except ImageProcessingError as e:
            if not await aiofiles.os.path.exists(path):
                return AssetMetadata(exists=False)
            logger.warning("Could not read dimensions of %s: %s", path.name, e.context)
            width = height = None
            fmt = None

        return AssetMetadata(
            exists=True, size=stat.st_size, width=width, height=height, format=fmt
        )

    async def delete_file(self, filename: str) -> bool:
        """Delete one file. Returns False if it did not exist."""
        try:
            path = self.path_for(filename)
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        return True

    async def delete(self, base: str) -> int:
        """
        Delete every variant of `base`. Idempotent.

        Returns:
            Number of files actually removed (0 when nothing existed).
        """
        results = await asyncio.gather(
            *(self.delete_file(variant_filename(base, s)) for s in self.suffixes)
        )
        removed = sum(1 for r in results if r)
        logger.info("Deleted %d variant(s) for base %s", removed, base)
        return removed

    async def list_all(self) -> List[StoredFile]:
        """
        Enumerate regular files with size and modification time.

        Files removed between listing and stat are skipped.

        Raises:
            FileStorageError if the directory itself cannot be read.
        """
        try:
            names = await aiofiles.os.listdir(self.root)
        except OSError as e:
            logger.error("Failed to list upload directory %s: %s", self.root, str(e))
            raise FileStorageError(
                message="Failed to read upload storage",
                context={"path": str(self.root), "os_error": str(e)},
            ) from e

        files: List[StoredFile] = []
        for name in sorted(names):
            try:
                stat = await aiofiles.os.stat(self.root / name)
            except FileNotFoundError:
                continue
            if not stat_module.S_ISREG(stat.st_mode):
                continue
            files.append(
                StoredFile(
                    name=name,
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return files

    async def is_writable(self) -> bool:
        """Used by readiness checks."""
        if not await aiofiles.os.path.isdir(self.root):
            return False
        return await asyncio.to_thread(os.access, self.root, os.W_OK)
