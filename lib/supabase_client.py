# =============================================================================
# lib/supabase_client.py - Supabase Client Wrapper
# =============================================================================
# This module provides a typed wrapper around the Supabase SDK:
# - A singleton service-role client for server-side checks and admin calls
# - Per-request clients scoped to a user's access token, so row-level
#   security decides what each caller may read and write
# - Generic row helpers used by the services and the live queries
# - Error classification (permission denied / not found)
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   client = SupabaseClient.for_user(access_token)
#   rows = SupabaseClient.select_rows(client, "tasks", filters={"user_id": uid})
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from supabase import Client, ClientOptions, create_client

from app.config import settings

# Set up logging for this module
logger = logging.getLogger(__name__)

# PostgREST / Postgres codes and messages that mean "not allowed"
_PERMISSION_MARKERS = (
    "42501",
    "row-level security",
    "permission denied",
    "insufficient permissions",
    "unauthorized",
    "'statusCode': 403",
    "'statusCode': 401",
    "'statusCode': '403'",
)

# PostgREST code for "no rows returned" on .single()
_NOT_FOUND_MARKERS = ("PGRST116",)


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Provides actionable error messages:
    errors should tell HOW to fix, not just WHAT failed.
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


def is_permission_denied(error: BaseException) -> bool:
    """
    Check whether an SDK error is an authorization rejection.

    Covers PostgREST RLS violations (42501) and storage 401/403 responses.
    """
    code = getattr(error, "code", None)
    if code in ("42501", "PGRST301", 401, 403, "401", "403"):
        return True
    text = str(error).lower()
    return any(marker.lower() in text for marker in _PERMISSION_MARKERS)


def is_not_found(error: BaseException) -> bool:
    """Check whether an SDK error means the addressed row does not exist."""
    code = getattr(error, "code", None)
    if code in _NOT_FOUND_MARKERS:
        return True
    return any(marker in str(error) for marker in _NOT_FOUND_MARKERS)


class SupabaseClient:
    """
    Typed wrapper for Supabase operations.

    The service-role client is a singleton shared across the application.
    User-scoped clients are created per request and carry the caller's JWT.

    Example:
        client = SupabaseClient.for_user(user.access_token)
        task = SupabaseClient.fetch_row(client, "tasks", task_id)
    """

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """
        Get or create the singleton service-role Supabase client.

        Uses service_role key which bypasses Row Level Security (RLS).
        Only used for health checks and admin auth calls.

        Raises:
            SupabaseClientError: If client creation fails
        """
        if cls._instance is None:
            try:
                cls._instance = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_KEY
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                raise SupabaseClientError(
                    message=f"Failed to create Supabase client: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
                )
        return cls._instance

    @classmethod
    def create_anon_client(cls) -> Client:
        """
        Create a fresh anon-key client.

        Used for sign-up/sign-in so that session state never leaks between
        requests through a shared client.
        """
        try:
            return create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to create Supabase client: {e}",
                code="CLIENT_INIT_FAILED",
                suggestion="Check SUPABASE_URL and SUPABASE_ANON_KEY in your .env file"
            )

    @classmethod
    def for_user(cls, access_token: str) -> Client:
        """
        Create a client that acts as the user owning `access_token`.

        Every table and storage request carries the user's JWT, so RLS
        policies apply exactly as they would for a browser client.
        """
        try:
            return create_client(
                settings.SUPABASE_URL,
                settings.SUPABASE_ANON_KEY,
                options=ClientOptions(
                    headers={"Authorization": f"Bearer {access_token}"}
                ),
            )
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to create user-scoped Supabase client: {e}",
                code="CLIENT_INIT_FAILED",
                suggestion="Check SUPABASE_URL and SUPABASE_ANON_KEY in your .env file"
            )

    @classmethod
    def _normalize_uuid(cls, uuid_value: str | UUID) -> str:
        """Convert UUID to string for queries."""
        return str(uuid_value) if isinstance(uuid_value, UUID) else uuid_value

    # -------------------------------------------------------------------------
    # Row Helpers
    # -------------------------------------------------------------------------

    @classmethod
    def select_rows(
        cls,
        client: Client,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Run an equality-filtered, optionally ordered query.

        Args:
            client: Supabase client to query with
            table: Table name
            filters: Column -> value equality filters
            order_by: Column to order by (server-side)
            descending: Order direction
            limit: Maximum number of rows

        Returns:
            List of row dicts, in server order

        Raises:
            Whatever the SDK raises; callers classify the error.
        """
        query = client.table(table).select("*")
        for column, value in (filters or {}).items():
            query = query.eq(column, cls._normalize_uuid(value))
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit:
            query = query.limit(limit)

        response = query.execute()
        rows = response.data or []
        logger.debug(f"Fetched {len(rows)} rows from {table}")
        return rows

    @classmethod
    def fetch_row(
        cls,
        client: Client,
        table: str,
        row_id: str | UUID,
        filters: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Fetch a single row by ID.

        Returns:
            Row dict, or None if the row does not exist (not an error)
        """
        try:
            rows = cls.select_rows(
                client,
                table,
                filters={"id": row_id, **(filters or {})},
                limit=1,
            )
        except Exception as e:
            if is_not_found(e):
                return None
            raise
        return rows[0] if rows else None
