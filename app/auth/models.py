# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================
# Pydantic models for authentication data.
# =============================================================================

from pydantic import BaseModel, EmailStr, Field
from uuid import UUID
from typing import Optional


class AuthUser(BaseModel):
    """
    Authenticated user extracted from a Supabase JWT.

    This is the minimal user info available from the token itself,
    without querying the database. The raw token is kept so that
    requests to Supabase can run as this user (RLS applies).
    """
    id: UUID
    email: Optional[str] = None
    access_token: Optional[str] = Field(default=None, repr=False, exclude=True)

    class Config:
        frozen = True  # Make immutable


class Credentials(BaseModel):
    """Email/password pair for sign-up and sign-in."""
    email: EmailStr
    password: str = Field(..., min_length=6, description="At least 6 characters")


class SessionResponse(BaseModel):
    """
    Result of a successful sign-up or sign-in.

    `access_token` is None after sign-up when the project requires email
    confirmation before the first sign-in.
    """
    user_id: UUID
    email: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class UserResponse(BaseModel):
    """Current user as returned by GET /auth/me."""
    id: UUID
    email: Optional[str] = None
