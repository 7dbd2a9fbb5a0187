"""
Health check endpoint.
"""
from aiohttp import web

from ..core import _json_response, _require_services


def register_health_routes(routes: web.RouteTableDef) -> None:
    """
    Expose index size and watcher state for health checks.
    """
    async def _health(request: web.Request) -> web.Response:
        svc, error = _require_services(request)
        if error:
            return _json_response({"ok": False, "error": error.error}, status=503)
        status = svc["index"].status()
        return _json_response({"ok": True, **status})

    routes.get("/api/health")(_health)
