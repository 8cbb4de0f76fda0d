# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

import re
from urllib.parse import unquote, urlparse
from uuid import UUID


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: str | UUID) -> str:
    """
    Normalize a UUID to string format.

    Handles both string and UUID objects, ensuring consistent string output.

    Example:
        user_id = normalize_uuid(uuid_obj)  # "550e8400-..."
        user_id = normalize_uuid("550e8400-...")  # "550e8400-..."
    """
    return str(value) if isinstance(value, UUID) else value


# =============================================================================
# Filename Utilities
# =============================================================================

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str | None, default: str = "file") -> str:
    """
    Make a user-supplied filename safe to embed in a storage path.

    Directory components are dropped and anything outside [A-Za-z0-9._-]
    collapses to a single underscore.

    Example:
        sanitize_filename("../My Photo (1).png")  # "My_Photo_1_.png"
    """
    if not filename:
        return default
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or default


def filename_from_url(url: str, default: str = "download") -> str:
    """
    Derive a download filename from the last path segment of a URL.

    Storage URLs often percent-encode nested paths, so the segment is
    unquoted before the final component is taken.
    """
    path = unquote(urlparse(url).path)
    return sanitize_filename(path.rsplit("/", 1)[-1], default=default)
