"""
Shared path validation for object storage downloads.

This module is the SINGLE SOURCE OF TRUTH for object key validation.
Every code path that addresses storage with a caller-supplied key MUST
go through validate_blob_reference() first.

Do not duplicate this logic elsewhere.
"""

from dataclasses import dataclass
from urllib.parse import quote


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

# Filename used when the caller does not supply one
DEFAULT_DISPLAY_NAME = "download"

# Characters left unescaped by JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------

class PathValidationError(ValueError):
    """
    Raised when an object key or display name fails validation.

    This is a security-critical error - do not catch and ignore.
    """
    pass


# -----------------------------------------------------------------------------
# Value Types
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class BlobReference:
    """A validated pointer to one object plus the name the browser should save it as."""
    object_key: str
    display_name: str


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

def validate_object_key(value: object) -> str:
    """
    Validate a caller-supplied object key.

    Validation rules:
    - Must be a non-empty string
    - No absolute paths (leading /)
    - No path traversal (..)
    - No null bytes

    Raises:
        PathValidationError: If the key is unsafe
    """
    if not isinstance(value, str):
        raise PathValidationError("storagePath is required")

    if not value:
        raise PathValidationError("storagePath is required")

    # Security: reject absolute paths
    if value.startswith('/'):
        raise PathValidationError("Invalid storagePath")

    # Security: reject traversal
    if '..' in value:
        raise PathValidationError("Invalid storagePath")

    if '\0' in value:
        raise PathValidationError("Invalid storagePath")

    return value


def validate_display_name(value: object) -> str:
    """Validate the filename used for the outbound Content-Disposition."""
    if not isinstance(value, str) or not value:
        raise PathValidationError("fileName must be a non-empty string")
    return value


def validate_blob_reference(object_key: object, display_name: object) -> BlobReference:
    """
    Validate a download request before any storage call is made.

    Args:
        object_key: Storage path within the bucket
        display_name: Filename presented to the browser

    Returns:
        BlobReference with both values checked

    Raises:
        PathValidationError: If either value is rejected
    """
    return BlobReference(
        object_key=validate_object_key(object_key),
        display_name=validate_display_name(display_name),
    )


# -----------------------------------------------------------------------------
# Header Encoding
# -----------------------------------------------------------------------------

def encode_display_name(display_name: str) -> str:
    """Percent-encode a filename the same way encodeURIComponent does."""
    return quote(display_name, safe=_URI_COMPONENT_SAFE, encoding="utf-8")


def encode_content_disposition(display_name: str) -> str:
    """
    Build a header-safe Content-Disposition value.

    The filename is percent-encoded so spaces, quotes and non-ASCII
    characters survive the header and decode back to the original.
    """
    return f'attachment; filename="{encode_display_name(display_name)}"'
