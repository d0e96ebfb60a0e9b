"""
Recipe Manager Media Backend — Access Token Service
====================================================

What:  Issues and verifies HS256 JWT access tokens.
Why:   Upload deletion, stats and cleanup need an authenticated principal;
       plain uploads are merely tagged with one when present.
How:   python-jose signs/verifies; the payload carries userId, email and exp.

User accounts live in the user store, which owns registration, login and
password hashing. This module only turns a token into an AuthPrincipal.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from app.config import settings
from app.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthPrincipal:
    user_id: str
    email: str


class AuthService:
    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        expires_minutes: Optional[int] = None,
    ):
        self.secret = secret or settings.jwt_secret
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expires_minutes = expires_minutes or settings.jwt_expires_minutes

    def create_access_token(
        self,
        principal: AuthPrincipal,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        expire = datetime.now(timezone.utc) + (
            expires_delta if expires_delta is not None else timedelta(minutes=self.expires_minutes)
        )
        payload = {
            "userId": principal.user_id,
            "email": principal.email,
            "sub": principal.user_id,
            "exp": expire,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> AuthPrincipal:
        """
        Verify signature and expiry, then extract the principal.

        Raises:
            AuthenticationError for any invalid, expired or incomplete token.
            The token is never logged.
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError:
            raise AuthenticationError()

        user_id = payload.get("userId") or payload.get("sub")
        email = payload.get("email")
        if not user_id or not email:
            logger.debug("Access token missing userId/email claims")
            raise AuthenticationError()
        return AuthPrincipal(user_id=str(user_id), email=str(email))


auth_service = AuthService()
