"""
aiohttp application factory.
"""
from typing import Any

from aiohttp import web

from rimg_shared import get_logger

from . import config
from .deps import build_services, start_services, stop_services
from .features.index import IndexSettings
from .routes import SERVICES_KEY, register_all_routes

logger = get_logger(__name__)


def create_app(
    settings: IndexSettings | None = None,
    *,
    services: dict[str, Any] | None = None,
    cors_origins=None,
    manage_lifecycle: bool = True,
) -> web.Application:
    """
    Build the web application.

    Args:
        settings: Index settings (defaults to `rimg_backend.config`)
        services: Prebuilt services (tests); built from `settings` otherwise
        cors_origins: Allowed CORS origins (defaults to config)
        manage_lifecycle: Start/stop the index with the app
    """
    if services is None:
        built = build_services(settings)
        if not built.ok or built.data is None:
            raise RuntimeError(built.error or "Failed to initialize services")
        services = built.data

    app = web.Application()
    app[SERVICES_KEY] = services
    register_all_routes(app, cors_origins if cors_origins is not None else config.CORS_ORIGINS)

    if manage_lifecycle:
        async def _on_startup(app: web.Application) -> None:
            await start_services(app[SERVICES_KEY])

        async def _on_cleanup(app: web.Application) -> None:
            await stop_services(app[SERVICES_KEY])

        app.on_startup.append(_on_startup)
        app.on_cleanup.append(_on_cleanup)

    return app
