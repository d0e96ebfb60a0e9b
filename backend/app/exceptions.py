"""
Recipe Manager Media Backend — Custom Exception Hierarchy
==========================================================

What:  Every failure the upload pipeline can report, as typed exceptions.
Why:   Handlers pick the status code from the type, so services never build
       HTTP responses and codec/OS details never reach the client.
How:   `message` is safe to show; `context` is only logged. The short
       `error` label becomes the response's "error" field.
Who:   Raised by validation, transcoder, store, orchestrator and the auth
       gate; translated in main.register_exception_handlers.

Exception Hierarchy:
    MediaServiceError (base)
    ├── ValidationError              → 400 Bad Request (client can fix)
    │   ├── InvalidFileTypeError     → 400 "Invalid file type"
    │   └── FileTooLargeError        → 400 "File too large"
    ├── AuthenticationError          → 401 Unauthorized
    ├── NotFoundError                → 404 Not Found
    ├── RateLimitExceededError       → 429 Too Many Requests
    ├── ImageProcessingError(kind)   → 422 / 500 depending on kind
    └── FileStorageError             → 500 Internal Server Error

ImageErrorKind:
    The transcoder and store translate codec/OS failures into one of a closed
    set of kinds by exception TYPE. The orchestrator and handlers switch on the
    kind; nothing matches on message text.
"""

import enum
from typing import Any, Dict, Optional


class MediaServiceError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
        error:    Short label placed in the response's "error" field
    """

    error = "Internal server error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MediaServiceError):
    """
    Raised when client input fails validation.

    When:    Bad MIME type, oversize file, missing file, malformed payload.
    HTTP:    400 Bad Request
    """

    error = "Validation error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class InvalidFileTypeError(ValidationError):
    """Declared MIME type is outside the allow-list."""

    error = "Invalid file type"


class FileTooLargeError(ValidationError):
    """Declared size exceeds the configured maximum."""

    error = "File too large"


class AuthenticationError(MediaServiceError):
    """
    Raised by the auth gate when a required bearer token is missing or invalid.

    HTTP:    401 Unauthorized
    The token itself is never logged or echoed back.
    """

    def __init__(
        self,
        error: str = "Invalid access token",
        message: str = "Invalid or expired token",
    ):
        super().__init__(message=message)
        self.error = error


class NotFoundError(MediaServiceError):
    """
    Raised when a requested asset does not exist.

    HTTP:    404 Not Found
    Not treated as exceptional for logging purposes.
    """

    error = "Not found"

    def __init__(
        self,
        message: str = "Image not found",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(MediaServiceError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    error = "Too many requests"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class ImageErrorKind(str, enum.Enum):
    """Closed set of transcode/persist failure kinds."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    INVALID_METADATA = "invalid_metadata"
    INSUFFICIENT_STORAGE = "insufficient_storage"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    PROCESSING_FAILED = "processing_failed"

    @property
    def status_code(self) -> int:
        # Disk space is our problem, not the client's image
        if self is ImageErrorKind.INSUFFICIENT_STORAGE:
            return 500
        return 422


class ImageProcessingError(MediaServiceError):
    """
    Raised when an image cannot be transcoded or its variants cannot be persisted.

    HTTP:    422 Unprocessable Entity (or 500 for INSUFFICIENT_STORAGE)
    The response message is always generic; `context` carries the detail
    for server-side logs.
    """

    def __init__(
        self,
        kind: ImageErrorKind,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message="Unable to process the uploaded image", context=context)
        self.kind = kind
        if kind.status_code == 422:
            self.error = "Processing error"
        else:
            self.error = "Internal server error"
            self.message = "Failed to process image upload"

    @property
    def status_code(self) -> int:
        return self.kind.status_code


class FileStorageError(MediaServiceError):
    """
    Raised when file system operations fail outside of an upload.

    When:    Listing or stat-ing the upload directory fails.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
