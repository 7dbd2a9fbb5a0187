"""Shared utilities for the random image server."""
from .errors import sanitize_error_message
from .log import get_logger, log_structured, log_success, request_id_var, set_level
from .result import Result
from .time import format_timestamp, now
from .types import (
    IMAGE_EXTENSIONS,
    REASON_EMPTY_CATEGORY,
    REASON_EMPTY_INDEX,
    REASON_NO_VALID_ENTRIES,
    ROOT_CATEGORY,
    ErrorCode,
    content_type_for,
    is_image_file,
    normalize_extensions,
)

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "log_structured",
    "set_level",
    "request_id_var",
    "now",
    "format_timestamp",
    "ErrorCode",
    "IMAGE_EXTENSIONS",
    "ROOT_CATEGORY",
    "REASON_EMPTY_INDEX",
    "REASON_EMPTY_CATEGORY",
    "REASON_NO_VALID_ENTRIES",
    "content_type_for",
    "is_image_file",
    "normalize_extensions",
    "sanitize_error_message",
]
