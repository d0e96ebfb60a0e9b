"""
Recipe Manager Media Backend — Auth Gate
=========================================

What:  FastAPI dependencies that turn an Authorization header into a principal.
How:   Two modes:

    get_current_user   REQUIRED. Missing/malformed/invalid token → 401.
                       Used by delete, stats and cleanup.
    get_optional_user  OPTIONAL. Returns the principal when a valid token is
                       present, None otherwise; never rejects. Used by upload,
                       where the user id only namespaces filenames.

Ordering:
    FastAPI resolves dependencies before validating the request body, so a
    rejected request never reaches the upload service or the filesystem.

Security:
    Tokens and verification details are never logged.
"""

from typing import Optional

from fastapi import Request

from app.exceptions import AuthenticationError
from app.services.auth_service import AuthPrincipal, AuthService, auth_service

BEARER_PREFIX = "Bearer "


def get_auth_service() -> AuthService:
    return auth_service


def _service_for(request: Request) -> AuthService:
    return getattr(request.app.state, "auth_service", None) or get_auth_service()


async def get_current_user(request: Request) -> AuthPrincipal:
    header = request.headers.get("Authorization")
    if not header:
        raise AuthenticationError(
            error="Access token required", message="Authorization header missing"
        )
    if not header.startswith(BEARER_PREFIX):
        raise AuthenticationError(
            error="Invalid authorization format",
            message="Authorization header must start with Bearer",
        )
    token = header[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError(error="Access token required", message="No token provided")

    principal = _service_for(request).verify_access_token(token)
    request.state.user = principal
    return principal


async def get_optional_user(request: Request) -> Optional[AuthPrincipal]:
    header = request.headers.get("Authorization") or ""
    parts = header.split(" ", 1)
    token = parts[1].strip() if len(parts) == 2 else ""
    if not token:
        return None
    try:
        principal = _service_for(request).verify_access_token(token)
    except AuthenticationError:
        return None
    request.state.user = principal
    return principal
