"""
Observability helpers (request id + timing) for aiohttp routes.
"""

from __future__ import annotations

import logging
import time
from typing import Any
from uuid import uuid4

from aiohttp import web

from rimg_shared import get_logger, log_structured, request_id_var

from .utils import env_bool, env_float

# OSError errno codes that indicate a client disconnect (not a server-side issue)
_CLIENT_DISCONNECT_ERRNO = frozenset({
    10053,  # WSAECONNABORTED (Windows)
    10054,  # WSAECONNRESET (Windows)
    104,    # ECONNRESET (Linux/macOS)
    32,     # EPIPE (Linux/macOS)
    9,      # EBADF (connection closed)
})

logger = get_logger(__name__)

_DEFAULT_SLOW_MS = 750.0

REQUEST_ID_KEY: web.RequestKey[str] = web.RequestKey("rimg_request_id", str)
DURATION_MS_KEY: web.RequestKey[float] = web.RequestKey("rimg_duration_ms", float)


def is_client_disconnect(exc: BaseException) -> bool:
    """
    Check if an exception represents a benign client disconnect.
    """
    if isinstance(exc, (ConnectionResetError, BrokenPipeError, ConnectionAbortedError)):
        return True
    if isinstance(exc, OSError):
        if getattr(exc, "errno", None) in _CLIENT_DISCONNECT_ERRNO:
            return True
        if getattr(exc, "winerror", None) in _CLIENT_DISCONNECT_ERRNO:
            return True
    return False


def _new_request_id() -> str:
    return uuid4().hex


def _get_request_id(request: web.Request) -> str:
    rid = (request.headers.get("X-Request-ID") or "").strip()
    # Keep client supplied ids short and printable.
    if rid and len(rid) <= 128 and rid.isprintable():
        return rid
    return _new_request_id()


def _should_log(status: int | None, duration_ms: float) -> bool:
    if env_bool("RIMG_OBS_LOG_ALL", False):
        return True
    if status is not None and status >= 500:
        return True
    return duration_ms >= env_float("RIMG_OBS_SLOW_MS", _DEFAULT_SLOW_MS)


@web.middleware
async def request_context_middleware(request: web.Request, handler):
    """Add request-id correlation and lightweight request logging."""
    if env_bool("RIMG_OBS_DISABLE", False):
        return await handler(request)

    rid = _get_request_id(request)
    request[REQUEST_ID_KEY] = rid
    token = request_id_var.set(rid)
    start = time.perf_counter()
    status: int | None = None
    error: str | None = None
    try:
        response = await handler(request)
        status = _response_status_code(response)
        return response
    except web.HTTPException as exc:
        status = exc.status
        exc.headers["X-Request-ID"] = rid
        raise
    except Exception as exc:
        status = 500
        error = f"{exc.__class__.__name__}: {exc}"
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000.0
        request[DURATION_MS_KEY] = duration_ms
        request_id_var.reset(token)
        _emit_request_log(request, status=status, duration_ms=duration_ms, error=error, rid=rid)


def _response_status_code(response: Any) -> int:
    try:
        return int(getattr(response, "status", 200) or 200)
    except (TypeError, ValueError):
        return 200


async def attach_request_id(request: web.Request, response: web.StreamResponse) -> None:
    """`on_response_prepare` hook: echo the request id, streamed responses included."""
    rid = request.get(REQUEST_ID_KEY)
    if rid:
        response.headers["X-Request-ID"] = rid


def _emit_request_log(
    request: web.Request,
    *,
    status: int | None,
    duration_ms: float,
    error: str | None,
    rid: str,
) -> None:
    if not _should_log(status, duration_ms):
        return
    fields = {
        "request_id": rid,
        "method": request.method,
        "path": request.path,
        "status": status,
        "duration_ms": round(duration_ms, 2),
    }
    if error:
        fields["error"] = error
    if status is not None and status >= 500:
        log_structured(logger, logging.ERROR, "Request handled", **fields)
    else:
        log_structured(logger, logging.INFO, "Request handled", **fields)
