"""
Access to the services built at startup.

Services live on the aiohttp application (`SERVICES_KEY`); handlers reach them
through the request, never through module globals.
"""
from typing import Any

from aiohttp import web

from rimg_shared import ErrorCode, Result

SERVICES_KEY: web.AppKey[dict[str, Any]] = web.AppKey("rimg_services", dict)


def _require_services(request: web.Request) -> tuple[dict[str, Any] | None, Result | None]:
    services = request.app.get(SERVICES_KEY)
    if not services or services.get("index") is None:
        return None, Result.Err(ErrorCode.SERVICE_UNAVAILABLE, "Image index is not available")
    return services, None
