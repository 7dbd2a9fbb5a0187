"""
Route registration system.
Installs the middlewares and registers every handler on an aiohttp app.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from aiohttp import web

from rimg_shared import get_logger

from ..observability import attach_request_id, request_context_middleware
from .handlers import register_health_routes, register_image_routes

logger = get_logger(__name__)

API_PREFIX = "/api/"
_CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
_CORS_ALLOW_HEADERS = "Content-Type, X-Request-ID"
_CORS_EXPOSE_HEADERS = "X-Request-ID, X-Image-Path"
_APP_KEY_CORS_ORIGINS: web.AppKey[tuple[str, ...]] = web.AppKey("rimg_cors_origins", tuple)
_APP_KEY_ROUTES_REGISTERED: web.AppKey[bool] = web.AppKey("rimg_routes_registered", bool)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _allowed_origin(request: web.Request) -> str | None:
    origins = request.app.get(_APP_KEY_CORS_ORIGINS) or ()
    if not origins:
        return None
    if "*" in origins:
        return "*"
    origin = request.headers.get("Origin") or ""
    return origin if origin in origins else None


def _apply_cors_headers(headers, origin: str) -> None:
    headers["Access-Control-Allow-Origin"] = origin
    headers["Access-Control-Expose-Headers"] = _CORS_EXPOSE_HEADERS
    if origin != "*":
        headers["Vary"] = "Origin"


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Answer CORS preflight requests for the API directly."""
    origin = _allowed_origin(request)
    if not request.path.startswith(API_PREFIX) or origin is None:
        return await handler(request)

    if request.method == "OPTIONS" and request.headers.get("Access-Control-Request-Method"):
        response = web.Response(status=204)
        _apply_cors_headers(response.headers, origin)
        response.headers["Access-Control-Allow-Methods"] = _CORS_ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = _CORS_ALLOW_HEADERS
        response.headers["Access-Control-Max-Age"] = "600"
        return response

    return await handler(request)


async def _cors_on_prepare(request: web.Request, response: web.StreamResponse) -> None:
    # Runs right before headers are sent, so streamed responses are covered too.
    if not request.path.startswith(API_PREFIX):
        return
    origin = _allowed_origin(request)
    if origin is not None and "Access-Control-Allow-Origin" not in response.headers:
        _apply_cors_headers(response.headers, origin)


def register_all_routes(app: web.Application, cors_origins: Iterable[str] = ("*",)) -> None:
    """Install middlewares and register all routes once per app."""
    if app.get(_APP_KEY_ROUTES_REGISTERED):
        return

    app[_APP_KEY_CORS_ORIGINS] = tuple(cors_origins)
    app.middlewares.append(request_context_middleware)
    app.middlewares.append(cors_middleware)
    app.on_response_prepare.append(_cors_on_prepare)
    app.on_response_prepare.append(attach_request_id)

    routes = web.RouteTableDef()
    register_image_routes(routes)
    register_health_routes(routes)
    app.add_routes(routes)
    app[_APP_KEY_ROUTES_REGISTERED] = True
    logger.debug("Registered %d routes", len(list(routes)))
