# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - supabase_client.py: Supabase client factory, query helpers, error classification
# - realtime.py: Change hub and live query sources
# - utils.py: Shared utilities (UUID normalization, filenames)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.supabase_client import (
    SupabaseClient,
    SupabaseClientError,
    is_not_found,
    is_permission_denied,
)
from lib.realtime import (
    ChangeHub,
    ChangeSource,
    CollectionQuery,
    LiveDocument,
    LiveQuery,
    RefetchingSource,
)
from lib.utils import filename_from_url, normalize_uuid, sanitize_filename

__all__ = [
    # Supabase
    "SupabaseClient",
    "SupabaseClientError",
    "is_not_found",
    "is_permission_denied",
    # Realtime
    "ChangeHub",
    "ChangeSource",
    "CollectionQuery",
    "LiveDocument",
    "LiveQuery",
    "RefetchingSource",
    # Utils
    "filename_from_url",
    "normalize_uuid",
    "sanitize_filename",
]
