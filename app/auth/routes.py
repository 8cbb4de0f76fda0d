# =============================================================================
# app/auth/routes.py - Authentication Routes
# =============================================================================
# Email/password sign-up, sign-in and sign-out through Supabase Auth, plus
# endpoints for inspecting the current token.
#
# Each sign-up/sign-in uses a fresh anon client so auth sessions are never
# shared between requests.
# =============================================================================

import logging
from fastapi import APIRouter, Depends, status

from app.auth.dependencies import get_current_user
from app.auth.models import AuthUser, Credentials, SessionResponse, UserResponse
from app.exceptions import AuthenticationError
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_response(auth_response) -> SessionResponse:
    """Convert a Supabase AuthResponse into our response model."""
    user = auth_response.user
    if user is None:
        raise AuthenticationError("no user returned")

    session = auth_response.session
    return SessionResponse(
        user_id=user.id,
        email=user.email,
        access_token=session.access_token if session else None,
        refresh_token=session.refresh_token if session else None,
        expires_in=session.expires_in if session else None,
    )


@router.post("/signup", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(credentials: Credentials) -> SessionResponse:
    """
    Create an account with email and password.

    When the project requires email confirmation, no tokens are returned
    until the address is confirmed and the user signs in.
    """
    client = SupabaseClient.create_anon_client()

    try:
        response = client.auth.sign_up(
            {"email": credentials.email, "password": credentials.password}
        )
    except Exception as e:
        logger.warning(f"Sign-up failed for {credentials.email}: {e}")
        raise AuthenticationError(str(e))

    logger.info(f"Signed up {credentials.email}")
    return _session_response(response)


@router.post("/signin", response_model=SessionResponse)
async def sign_in(credentials: Credentials) -> SessionResponse:
    """
    Sign in with email and password.

    Raises:
        401: If the credentials are rejected
    """
    client = SupabaseClient.create_anon_client()

    try:
        response = client.auth.sign_in_with_password(
            {"email": credentials.email, "password": credentials.password}
        )
    except Exception as e:
        logger.warning(f"Sign-in failed for {credentials.email}: {e}")
        raise AuthenticationError(str(e))

    logger.info(f"Signed in {credentials.email}")
    return _session_response(response)


@router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(user: AuthUser = Depends(get_current_user)) -> None:
    """
    Revoke the current user's sessions.

    Access tokens already issued stay valid until they expire; refresh
    tokens stop working immediately.
    """
    client = SupabaseClient.get_client()

    try:
        client.auth.admin.sign_out(user.access_token)
    except Exception as e:
        logger.warning(f"Sign-out failed for {user.id}: {e}")
        raise AuthenticationError(str(e))

    logger.info(f"Signed out {user.id}")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    user: AuthUser = Depends(get_current_user)
) -> UserResponse:
    """
    Get the current authenticated user.

    Raises:
        401: If not authenticated
    """
    return UserResponse(id=user.id, email=user.email)


@router.get("/verify")
async def verify_token(
    user: AuthUser = Depends(get_current_user)
) -> dict:
    """
    Verify that the current token is valid.

    Useful for checking if a stored token is still valid.
    """
    return {
        "valid": True,
        "user_id": str(user.id),
        "email": user.email
    }
