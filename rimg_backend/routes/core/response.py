"""
Response utilities for route handlers.
"""

import math

from aiohttp import web

from rimg_shared import ErrorCode, Result, sanitize_error_message

from ...utils import env_bool

# Result codes that map to a client-facing status other than 500.
_STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.SERVICE_UNAVAILABLE.value: 503,
}


def safe_error_message(exc: Exception, generic_message: str) -> str:
    """
    Return a safe message for clients.

    By default, avoid leaking internal details. When `RIMG_DEBUG` is enabled,
    include the (path-masked) exception string to help debugging.
    """
    if env_bool("RIMG_DEBUG", False):
        return sanitize_error_message(exc, generic_message)
    return generic_message


def _json_response(payload: dict, status: int = 200) -> web.Response:
    return web.json_response(_sanitize_json_payload(payload), status=status)


def _error_response(message: str, status: int) -> web.Response:
    """`{"error": message}` with the given status."""
    return _json_response({"error": message}, status=status)


def _result_error_response(result: Result) -> web.Response:
    """Convert a failed Result into `{"error": ...}` with a matching status."""
    status = _STATUS_BY_CODE.get(str(result.code), 500)
    return _error_response(result.error or "Request failed", status)


def _sanitize_json_payload(value):
    """
    Normalize payload values so they are always valid strict JSON.
    - Converts NaN/Infinity floats to None.
    - Recurses through dict/list/tuple containers.
    """
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {k: _sanitize_json_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_json_payload(v) for v in value]
    return value
