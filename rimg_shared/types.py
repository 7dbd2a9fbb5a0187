"""
Shared types, enums, and constants.
"""
import os
from enum import Enum
from typing import Final

# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client
    NOT_FOUND = "NOT_FOUND"

    # Index / filesystem
    DIRECTORY_UNREADABLE = "DIRECTORY_UNREADABLE"
    SCAN_FAILED = "SCAN_FAILED"
    STREAM_FAILURE = "STREAM_FAILURE"

    # Service availability
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# Reasons attached to NOT_FOUND results (Result.meta["reason"])
REASON_EMPTY_INDEX: Final[str] = "empty index"
REASON_EMPTY_CATEGORY: Final[str] = "empty category"
REASON_NO_VALID_ENTRIES: Final[str] = "no valid entries"

# Category used for files sitting directly under the watched root
ROOT_CATEGORY: Final[str] = "root"

# Default image extension allow-list
IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"})

# Content types for served images. `mimetypes` misses some of these on
# Windows depending on registry state, so keep an explicit table.
IMAGE_CONTENT_TYPES: Final[dict[str, str]] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".avif": "image/avif",
}


def normalize_extensions(values) -> frozenset[str]:
    """
    Normalize an extension list to lower-case, dot-prefixed values.

    Args:
        values: Iterable of extensions ("jpg", ".PNG", ...)

    Returns:
        Frozen set of normalized extensions (may be empty)
    """
    out: set[str] = set()
    for raw in values or ():
        ext = str(raw or "").strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = f".{ext}"
        out.add(ext)
    return frozenset(out)


def is_image_file(filename: str, extensions=IMAGE_EXTENSIONS) -> bool:
    """Check the (case-insensitive) extension of `filename` against the allow-list."""
    ext = os.path.splitext(filename)[1].lower()
    return bool(ext) and ext in extensions


def content_type_for(filename: str) -> str:
    """
    Best-effort content type for an image path.

    Falls back to `mimetypes` and finally to `application/octet-stream`.
    """
    ext = os.path.splitext(filename)[1].lower()
    known = IMAGE_CONTENT_TYPES.get(ext)
    if known:
        return known
    import mimetypes

    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"
