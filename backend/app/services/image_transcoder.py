"""
Recipe Manager Media Backend — Image Transcoder
================================================

What:  Turns one uploaded raster image into three WebP derivatives.
Why:   The frontend needs a capped "original", a square card thumbnail and a
       lighter optimized copy; serving the raw upload would waste bandwidth.
How:   Pillow decodes the bytes once into a fully loaded, mode-normalized
       image. Each variant is then an independent resize + encode against that
       read-only source, so the orchestrator can run them in parallel threads.

Variants:
    ┌────────────┬─────────────┬─────────────────────────────────┬─────────┐
    │ variant    │ suffix      │ geometry                        │ quality │
    ├────────────┼─────────────┼─────────────────────────────────┼─────────┤
    │ original   │ _original   │ inside 1200×1200, no upscaling  │   90    │
    │ thumbnail  │ _thumb      │ cover 300×300, centre crop      │   80    │
    │ optimized  │ _optimized  │ inside 800×800, no upscaling    │   85    │
    └────────────┴─────────────┴─────────────────────────────────┴─────────┘

Error translation:
    Codec and OS failures are mapped by exception type onto ImageErrorKind
    (see classify_error). Callers never see a raw Pillow exception.
"""

import errno
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from app.exceptions import ImageErrorKind, ImageProcessingError

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "WEBP"
OUTPUT_EXTENSION = ".webp"
OUTPUT_MIME_TYPE = "image/webp"

FIT_INSIDE = "inside"
FIT_COVER = "cover"


@dataclass(frozen=True)
class VariantSpec:
    """Geometry and encoding settings for one derived asset."""

    name: str
    suffix: str
    width: int
    height: int
    fit: str
    quality: int


ORIGINAL = VariantSpec("original", "_original", 1200, 1200, FIT_INSIDE, 90)
THUMBNAIL = VariantSpec("thumbnail", "_thumb", 300, 300, FIT_COVER, 80)
OPTIMIZED = VariantSpec("optimized", "_optimized", 800, 800, FIT_INSIDE, 85)

VARIANTS: Tuple[VariantSpec, ...] = (ORIGINAL, THUMBNAIL, OPTIMIZED)


@dataclass
class SourceImage:
    """A decoded upload. `image` must be treated as read-only."""

    image: Image.Image
    width: int
    height: int
    format: str


@dataclass
class EncodedVariant:
    spec: VariantSpec
    data: bytes
    width: int
    height: int


def classify_error(exc: BaseException, decoding: bool = False) -> ImageErrorKind:
    """
    Map a codec/OS exception onto the stable ImageErrorKind surface.

    Args:
        exc: The exception raised by Pillow or the filesystem
        decoding: True while reading the upload; a generic OSError then means
                  the bytes are corrupt rather than that processing broke
    """
    if isinstance(exc, (MemoryError, Image.DecompressionBombError)):
        return ImageErrorKind.RESOURCE_EXHAUSTED
    if isinstance(exc, UnidentifiedImageError):
        return ImageErrorKind.UNSUPPORTED_FORMAT
    if isinstance(exc, OSError) and exc.errno == errno.ENOSPC:
        return ImageErrorKind.INSUFFICIENT_STORAGE
    if isinstance(exc, OSError) and exc.errno == errno.ENOMEM:
        return ImageErrorKind.RESOURCE_EXHAUSTED
    if decoding and isinstance(exc, (OSError, SyntaxError, ValueError)):
        return ImageErrorKind.UNSUPPORTED_FORMAT
    return ImageErrorKind.PROCESSING_FAILED


def fit_inside(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """Largest size within the box that keeps aspect ratio; never upscales."""
    scale = min(max_width / width, max_height / height, 1.0)
    return max(1, round(width * scale)), max(1, round(height * scale))


def _normalize_mode(image: Image.Image) -> Image.Image:
    # WebP only encodes RGB and RGBA
    has_alpha = image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if has_alpha:
        return image if image.mode == "RGBA" else image.convert("RGBA")
    return image if image.mode == "RGB" else image.convert("RGB")


class ImageTranscoder:
    """
    Stateless Pillow wrapper. Every method is blocking; the orchestrator runs
    them in worker threads so the event loop stays free.
    """

    def decode(self, content: bytes) -> SourceImage:
        """
        Decode upload bytes into a SourceImage.

        Raises:
            ImageProcessingError(UNSUPPORTED_FORMAT) for unreadable/corrupt bytes
            ImageProcessingError(INVALID_METADATA) when width/height are missing
            ImageProcessingError(RESOURCE_EXHAUSTED) for decompression bombs / OOM
        """
        try:
            with Image.open(io.BytesIO(content)) as opened:
                source_format = (opened.format or "unknown").lower()
                width, height = opened.size
                if not width or not height:
                    raise ImageProcessingError(
                        ImageErrorKind.INVALID_METADATA,
                        context={"width": width, "height": height},
                    )
                opened.load()
                image = _normalize_mode(opened)
                if image is opened:
                    image = opened.copy()
        except ImageProcessingError:
            raise
        except Exception as e:
            kind = classify_error(e, decoding=True)
            raise ImageProcessingError(
                kind, context={"stage": "decode", "error": repr(e)}
            ) from e

        return SourceImage(image=image, width=width, height=height, format=source_format)

    def render(self, source: SourceImage, spec: VariantSpec) -> EncodedVariant:
        """Resize and WebP-encode one variant of `source`."""
        try:
            if spec.fit == FIT_COVER:
                resized = ImageOps.fit(
                    source.image,
                    (spec.width, spec.height),
                    method=Image.Resampling.LANCZOS,
                    centering=(0.5, 0.5),
                )
            else:
                size = fit_inside(source.width, source.height, spec.width, spec.height)
                if size == (source.width, source.height):
                    resized = source.image.copy()
                else:
                    resized = source.image.resize(size, Image.Resampling.LANCZOS)

            buffer = io.BytesIO()
            resized.save(buffer, format=OUTPUT_FORMAT, quality=spec.quality)
        except Exception as e:
            kind = classify_error(e)
            raise ImageProcessingError(
                kind, context={"stage": "render", "variant": spec.name, "error": repr(e)}
            ) from e

        return EncodedVariant(
            spec=spec,
            data=buffer.getvalue(),
            width=resized.width,
            height=resized.height,
        )

    def read_dimensions(self, source: Union[str, Path, bytes]) -> Tuple[int, int, str]:
        """
        Read (width, height, format) from a file path or bytes without a full decode.

        Raises:
            ImageProcessingError if the header cannot be parsed.
        """
        target = io.BytesIO(source) if isinstance(source, bytes) else source
        try:
            with Image.open(target) as image:
                return image.width, image.height, (image.format or "unknown").lower()
        except Exception as e:
            raise ImageProcessingError(
                classify_error(e, decoding=True),
                context={"stage": "read_dimensions", "error": repr(e)},
            ) from e


image_transcoder = ImageTranscoder()
