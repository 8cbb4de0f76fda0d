# =============================================================================
# app/auth/dependencies.py - Access Token Verification
# =============================================================================
# Turns a Supabase access token into an AuthUser.
#
# Key selection by token header:
# - alg HS256         -> project JWT secret
# - asymmetric (kid)  -> matching key from the project's JWKS endpoint
#
# decode_access_token() is shared by the HTTP dependencies below and by the
# WebSocket streams, which receive tokens as query parameters or messages.
#
# Usage:
#   @router.get("/tasks")
#   async def list_tasks(user: AuthUser = Depends(get_current_user)):
#       ...
# =============================================================================

import logging
import time
from typing import Any, Optional
from uuid import UUID

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from app.auth.models import AuthUser
from app.config import settings

logger = logging.getLogger(__name__)

bearer = HTTPBearer()
bearer_optional = HTTPBearer(auto_error=False)

TOKEN_AUDIENCE = "authenticated"


class InvalidTokenError(Exception):
    """Token is well-formed JWT but not an acceptable Supabase access token."""


class JWKSCache:
    """
    Public signing keys of the Supabase project, refreshed at most once per `ttl`.

    A failed refresh keeps serving the previous key set.
    """

    def __init__(self, url: str, ttl: float = 3600):
        self.url = url
        self.ttl = ttl
        self._keys: list[dict[str, Any]] = []
        self._fetched_at = 0.0

    def _refresh(self) -> None:
        try:
            response = httpx.get(self.url, timeout=10)
            response.raise_for_status()
            self._keys = response.json().get("keys", [])
            self._fetched_at = time.time()
            logger.debug(f"Loaded {len(self._keys)} signing keys from {self.url}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not load signing keys from {self.url}: {e}")

    def find(self, kid: str) -> dict[str, Any] | None:
        if not self._keys or time.time() - self._fetched_at >= self.ttl:
            self._refresh()
        return next((key for key in self._keys if key.get("kid") == kid), None)


_jwks = JWKSCache(f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json")


def _signing_key(token: str) -> tuple[str | dict[str, Any], str]:
    """Pick (key, algorithm) for `token` from its unverified header."""
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        # Let jwt.decode produce the real error
        return settings.SUPABASE_JWT_SECRET, "HS256"

    algorithm = header.get("alg", "HS256")
    kid = header.get("kid")

    if algorithm != "HS256" and kid:
        key = _jwks.find(kid)
        if key is not None:
            return key, algorithm
        logger.warning(f"No signing key with kid={kid} ({algorithm}), trying the JWT secret")

    return settings.SUPABASE_JWT_SECRET, "HS256"


def decode_access_token(token: str) -> AuthUser:
    """
    Verify a Supabase access token and return its user.

    Raises:
        ExpiredSignatureError: If the token has expired
        JWTError: If the signature or claims are invalid
        InvalidTokenError: If the token has no usable user ID
    """
    key, algorithm = _signing_key(token)
    claims = jwt.decode(token, key, algorithms=[algorithm], audience=TOKEN_AUDIENCE)

    subject = claims.get("sub")
    if not subject:
        raise InvalidTokenError("missing user ID")

    try:
        user_id = UUID(subject)
    except ValueError:
        raise InvalidTokenError("malformed user ID")

    return AuthUser(id=user_id, email=claims.get("email"), access_token=token)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer)
) -> AuthUser:
    """
    Resolve the caller from the `Authorization: Bearer` header.

    The returned AuthUser keeps the raw token, so services can talk to
    Supabase as this user.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    try:
        user = decode_access_token(credentials.credentials)
    except ExpiredSignatureError:
        logger.warning("Rejected expired access token")
        raise _unauthorized("Token has expired")
    except (InvalidTokenError, JWTError) as e:
        logger.warning(f"Rejected access token: {e}")
        raise _unauthorized(f"Invalid token: {e}")

    logger.debug(f"Authenticated user: {user.id}")
    return user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_optional)
) -> Optional[AuthUser]:
    """The caller if a valid token was sent, otherwise None (anonymous contact form)."""
    if credentials is None:
        return None
    try:
        return await get_current_user(credentials)
    except HTTPException:
        return None
