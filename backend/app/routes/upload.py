"""
Recipe Manager Media Backend — Upload Route Handlers
=====================================================

What:  HTTP surface of the upload pipeline.
How:   Thin handlers: extract the request data, call UploadService, wrap the
       result in {success, data, message}. Every failure is an exception
       translated by the global handlers in main.py.

Route Inventory:
    POST   /api/upload/image        optional auth  upload + transcode
    DELETE /api/upload/image        required auth  delete all variants
    GET    /api/upload/image/info   public         existence, size, dimensions
    GET    /api/upload/stats        required auth  file count / sizes
    POST   /api/upload/cleanup      required auth  retention sweep on demand
"""

import logging
from typing import Optional, Type, TypeVar

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.exceptions import NotFoundError, ValidationError
from app.middleware.auth import get_current_user, get_optional_user
from app.schemas.upload import (
    CleanupData,
    CleanupRequest,
    DeleteImageRequest,
    ErrorResponse,
    ImageInfo,
    ImageInfoData,
    ImageMetadataInfo,
    SuccessResponse,
    UploadedImage,
    UploadStats,
    UploadStatsData,
)
from app.services.auth_service import AuthPrincipal
from app.services.image_transcoder import OUTPUT_MIME_TYPE
from app.services.upload_service import UploadService, filename_from_url
from app.services.validation import ensure_acceptable_part

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["Upload"])

AUTH_RESPONSES = {401: {"description": "Missing or invalid access token", "model": ErrorResponse}}


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


BodyModel = TypeVar("BodyModel", bound=BaseModel)


async def _parse_json_body(request: Request, model: Type[BodyModel], required: bool) -> BodyModel:
    raw = await request.body()
    if not raw.strip():
        if required:
            raise ValidationError(message="Request body is required", field="body")
        return model()
    try:
        return model.model_validate_json(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        if first["type"] == "json_invalid":
            raise ValidationError(message="Request body must be valid JSON", field="body") from e
        location = ".".join(str(part) for part in first["loc"])
        message = f"Invalid value for '{location}': {first['msg']}" if location else first["msg"]
        raise ValidationError(message=message, field=location or "body") from e


# Bodies are parsed inside dependencies that require auth first, so an
# anonymous caller gets 401 no matter what it sent.
async def parse_delete_body(
    request: Request, user: AuthPrincipal = Depends(get_current_user)
) -> DeleteImageRequest:
    return await _parse_json_body(request, DeleteImageRequest, required=True)


async def parse_cleanup_body(
    request: Request, user: AuthPrincipal = Depends(get_current_user)
) -> CleanupRequest:
    return await _parse_json_body(request, CleanupRequest, required=False)


def _json_request_body(model: Type[BaseModel], required: bool) -> dict:
    schema = model.model_json_schema(by_alias=True)
    return {
        "requestBody": {
            "required": required,
            "content": {"application/json": {"schema": schema}},
        }
    }


@router.post(
    "/image",
    response_model=SuccessResponse[UploadedImage],
    responses={
        400: {"description": "Missing file, invalid type or too large", "model": ErrorResponse},
        422: {"description": "Image could not be decoded or processed", "model": ErrorResponse},
        429: {"description": "Upload rate limit exceeded", "model": ErrorResponse},
    },
    summary="Upload a recipe image",
)
async def upload_image(
    image: Optional[UploadFile] = File(
        default=None,
        description="JPEG, PNG or WebP image (max 10MB by default)",
    ),
    user: Optional[AuthPrincipal] = Depends(get_optional_user),
    service: UploadService = Depends(get_upload_service),
) -> SuccessResponse[UploadedImage]:
    """
    Accept one multipart `image` part and return URLs of its three WebP variants.

    Anonymous uploads are allowed; when a valid token is present the user id
    prefixes the stored filenames.
    """
    if image is None:
        raise ValidationError(message="No image file provided", field="image")

    try:
        ensure_acceptable_part(image.content_type, image.size)
        content = await image.read()
        logger.info(
            "Received upload: filename=%s type=%s size=%d user=%s",
            image.filename or "unknown",
            image.content_type,
            len(content),
            user.user_id if user else "anonymous",
        )
        processed = await service.upload(
            content=content,
            content_type=image.content_type,
            declared_size=image.size,
            user_id=user.user_id if user else None,
        )
    finally:
        await image.close()

    return SuccessResponse(
        data=UploadedImage(
            url=processed.optimized_url,
            filename=filename_from_url(processed.optimized_url),
            size=processed.metadata.size,
            mimetype=OUTPUT_MIME_TYPE,
            original_url=processed.original_url,
            thumbnail_url=processed.thumbnail_url,
            webp_url=processed.optimized_url,
        ),
        message="Image uploaded and processed successfully",
    )


@router.delete(
    "/image",
    response_model=SuccessResponse[None],
    responses={**AUTH_RESPONSES, 404: {"description": "Nothing to delete", "model": ErrorResponse}},
    summary="Delete an uploaded image and all its variants",

    openapi_extra=_json_request_body(DeleteImageRequest, required=True),
)
async def delete_image(
    body: DeleteImageRequest = Depends(parse_delete_body),
    user: AuthPrincipal = Depends(get_current_user),
    service: UploadService = Depends(get_upload_service),
) -> SuccessResponse[None]:
    deleted = await service.delete_image(body.image_url)
    if not deleted:
        raise NotFoundError(message="Image not found or already deleted")

    logger.info("Image deleted by user %s: %s", user.user_id, filename_from_url(body.image_url))
    return SuccessResponse(data=None, message="Image deleted successfully")


@router.get(
    "/image/info",
    response_model=SuccessResponse[ImageInfoData],
    responses={404: {"description": "Image not found", "model": ErrorResponse}},
    summary="Get stored image information",
)
async def get_image_info(
    image_url: str = Query(..., alias="imageUrl", min_length=1),
    service: UploadService = Depends(get_upload_service),
) -> SuccessResponse[ImageInfoData]:
    info = await service.get_image_info(image_url)
    if not info.exists:
        raise NotFoundError(message="Image not found")

    return SuccessResponse(
        data=ImageInfoData(
            image_info=ImageInfo(
                exists=True,
                size=info.size,
                metadata=ImageMetadataInfo(width=info.width, height=info.height, format=info.format),
            )
        ),
        message="Image information retrieved successfully",
    )


@router.get(
    "/stats",
    response_model=SuccessResponse[UploadStatsData],
    responses=AUTH_RESPONSES,
    summary="Aggregate upload storage statistics",
)
async def get_upload_stats(
    user: AuthPrincipal = Depends(get_current_user),
    service: UploadService = Depends(get_upload_service),
) -> SuccessResponse[UploadStatsData]:
    stats = await service.get_upload_stats()
    return SuccessResponse(
        data=UploadStatsData(
            stats=UploadStats(
                total_files=stats.total_files,
                total_size=stats.total_size,
                average_size=stats.average_size,
            )
        ),
        message="Upload statistics retrieved successfully",
    )


@router.post(
    "/cleanup",
    response_model=SuccessResponse[CleanupData],
    responses=AUTH_RESPONSES,
    summary="Delete images older than a number of days",

    openapi_extra=_json_request_body(CleanupRequest, required=False),
)
async def cleanup_old_images(
    request: Request,
    body: CleanupRequest = Depends(parse_cleanup_body),
    user: AuthPrincipal = Depends(get_current_user),
) -> SuccessResponse[CleanupData]:
    sweeper = request.app.state.retention_sweeper
    deleted_count = await sweeper.sweep(body.older_than_days)

    logger.info(
        "Manual cleanup by user %s removed %d file(s) older than %d day(s)",
        user.user_id,
        deleted_count,
        body.older_than_days,
    )
    return SuccessResponse(
        data=CleanupData(deleted_count=deleted_count),
        message=f"Cleanup completed. {deleted_count} images deleted.",
    )
