"""
Recipe Manager Media Backend — Upload Request/Response Schemas
===============================================================

What:  Pydantic models defining the upload API contract with the frontend.
How:   Python attributes are snake_case; JSON uses camelCase aliases
       (the React client reads `originalUrl`, `olderThanDays`, ...).
       Routes return envelopes of the form {success, data, message}.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuccessResponse(CamelModel, Generic[T]):
    """Envelope for every successful upload-route response."""

    success: bool = True
    data: Optional[T] = None
    message: str = ""


# ══════════════════════════════════════════════════════════════════════════
# Request Bodies
# ══════════════════════════════════════════════════════════════════════════


class DeleteImageRequest(CamelModel):
    image_url: str = Field(min_length=1, description="URL of any variant of the image")


class CleanupRequest(CamelModel):
    older_than_days: int = Field(
        default=30,
        ge=1,
        description="Delete files whose modification time is older than this many days",
    )


# ══════════════════════════════════════════════════════════════════════════
# Response Payloads
# ══════════════════════════════════════════════════════════════════════════


class UploadedImage(CamelModel):
    """
    What:  Result of POST /api/upload/image.
    Why:   `url` is what the recipe form stores; the variant URLs let the
           client pick a thumbnail for cards.

    `size` is the byte length of the uploaded file, not of any variant.
    """

    url: str = Field(description="Optimized WebP variant URL")
    filename: str
    size: int
    mimetype: str
    original_url: str
    thumbnail_url: str
    webp_url: str


class ImageMetadataInfo(CamelModel):
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None


class ImageInfo(CamelModel):
    exists: bool
    size: Optional[int] = None
    metadata: Optional[ImageMetadataInfo] = None


class ImageInfoData(CamelModel):
    image_info: ImageInfo


class UploadStats(CamelModel):
    total_files: int
    total_size: int
    average_size: int


class UploadStatsData(CamelModel):
    stats: UploadStats


class CleanupData(CamelModel):
    deleted_count: int


class ErrorResponse(BaseModel):
    """
    Error body produced by the global exception handlers.

    Example:
        {
            "success": false,
            "error": "Invalid file type",
            "message": "Invalid file type. Only JPEG, PNG, and WebP images are allowed.",
            "request_id": "a1b2c3d4"
        }
    """

    success: bool = False
    error: str = Field(description="Short error label")
    message: str = Field(description="Human-readable error description")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
