"""
Recipe Manager Media Backend — Upload Validation
=================================================

What:  Pure pre-processing checks for an incoming image part.
Why:   Rejects malformed requests before any decode or disk work begins.
How:   Each check appends a human-readable violation; all checks always run
       so tests can see every problem, while the HTTP layer surfaces only the
       first one.

Checks (in order):
    1. Declared MIME type is in the allow-list
    2. Declared size (or payload length when the client sent none) is within max
    3. Payload is present and non-empty

Checks 1 and 2 need only the part headers, so ensure_acceptable_part runs
them before the body is read into memory.
"""

from typing import List, Optional, Sequence, Tuple, Type

from app.config import settings
from app.exceptions import FileTooLargeError, InvalidFileTypeError, ValidationError

INVALID_TYPE_MESSAGE = "Invalid file type. Only JPEG, PNG, and WebP images are allowed."
INVALID_DATA_MESSAGE = "Invalid file data."


def _too_large_message(max_size: int) -> str:
    return f"File too large. Maximum size is {max_size // (1024 * 1024)}MB."


Violation = Tuple[Type[ValidationError], str]


def _header_violations(
    content_type: Optional[str],
    size: Optional[int],
    allowed_types: Sequence[str],
    max_size: int,
) -> List[Violation]:
    violations: List[Violation] = []

    if content_type not in allowed_types:
        violations.append((InvalidFileTypeError, INVALID_TYPE_MESSAGE))

    if size is not None and size > max_size:
        violations.append((FileTooLargeError, _too_large_message(max_size)))

    return violations


def _collect(
    content_type: Optional[str],
    declared_size: Optional[int],
    content: Optional[bytes],
    allowed_types: Sequence[str],
    max_size: int,
) -> List[Violation]:
    size = declared_size if declared_size is not None else len(content or b"")
    violations = _header_violations(content_type, size, allowed_types, max_size)

    if not content:
        violations.append((ValidationError, INVALID_DATA_MESSAGE))

    return violations


def validate_upload(
    content_type: Optional[str],
    declared_size: Optional[int],
    content: Optional[bytes],
    allowed_types: Optional[Sequence[str]] = None,
    max_size: Optional[int] = None,
) -> List[str]:
    """
    Return every violation for an uploaded file part (empty list = valid).

    Args:
        content_type: MIME type declared by the client
        declared_size: Size declared by the multipart part, if any
        content: Raw payload bytes
        allowed_types: Override for settings.allowed_file_types_list (tests)
        max_size: Override for settings.max_file_size (tests)
    """
    return [
        message
        for _, message in _collect(
            content_type,
            declared_size,
            content,
            allowed_types if allowed_types is not None else settings.allowed_file_types_list,
            max_size if max_size is not None else settings.max_file_size,
        )
    ]


def ensure_valid_upload(
    content_type: Optional[str],
    declared_size: Optional[int],
    content: Optional[bytes],
    allowed_types: Optional[Sequence[str]] = None,
    max_size: Optional[int] = None,
) -> None:
    """Raise the first violation as its typed ValidationError subclass."""
    violations = _collect(
        content_type,
        declared_size,
        content,
        allowed_types if allowed_types is not None else settings.allowed_file_types_list,
        max_size if max_size is not None else settings.max_file_size,
    )
    _raise_first(violations, content_type, declared_size)


def _raise_first(
    violations: List[Violation], content_type: Optional[str], declared_size: Optional[int]
) -> None:
    if violations:
        exc_type, message = violations[0]
        raise exc_type(
            message=message,
            field="image",
            context={
                "content_type": content_type,
                "declared_size": declared_size,
                "violations": [m for _, m in violations],
            },
        )


def ensure_acceptable_part(
    content_type: Optional[str],
    declared_size: Optional[int],
    allowed_types: Optional[Sequence[str]] = None,
    max_size: Optional[int] = None,
) -> None:
    """
    Header-only checks, run before the part body is buffered.

    An oversize part is refused from its declared size alone. A part with no
    declared size passes here and is measured by ensure_valid_upload.
    """
    _raise_first(
        _header_violations(
            content_type,
            declared_size,
            allowed_types if allowed_types is not None else settings.allowed_file_types_list,
            max_size if max_size is not None else settings.max_file_size,
        ),
        content_type,
        declared_size,
    )
