"""
Image endpoints: random image, collection info, categories, rescan.
"""
import asyncio
from typing import Any
from urllib.parse import quote

from aiohttp import web

from rimg_shared import ErrorCode, Result, format_timestamp, get_logger

from ... import config
from ...features.index import IndexService, IndexStats, Selection
from ...observability import is_client_disconnect
from ..core import (
    _error_response,
    _json_response,
    _require_services,
    _result_error_response,
    safe_error_message,
)

logger = get_logger(__name__)

_SEND_FAILED = "Failed to send image"


def _category_param(request: web.Request) -> str | None:
    # Exact, case-sensitive match; an empty value means "no category".
    raw = request.query.get("category")
    return raw if raw else None


def _categories_payload(stats: IndexStats) -> list[dict[str, Any]]:
    return [c.to_dict() for c in stats.categories]


def _stats_payload(stats: IndexStats, **extra: Any) -> dict[str, Any]:
    payload = {
        "total": stats.total,
        "lastUpdated": format_timestamp(stats.last_updated),
        "scanTime": stats.scan_time_ms,
        "categories": _categories_payload(stats),
    }
    payload.update(extra)
    return payload


async def _stream_selection(request: web.Request, selection: Selection) -> web.StreamResponse:
    """
    Stream an opened selection in chunks.

    Failures before the headers go out become a 500 JSON error; the file
    handle is closed on every path, including cancellation.
    """
    handle = selection.handle
    if handle is None:
        return _error_response(_SEND_FAILED, 500)

    response = web.StreamResponse(
        status=200,
        headers={
            "Cache-Control": "no-store",
            "X-Image-Path": quote(selection.entry),
        },
    )
    try:
        response.content_type = selection.content_type
        response.content_length = selection.size
        await response.prepare(request)
        # Never send more than the advertised length, even if the file grew.
        remaining = selection.size
        while remaining > 0:
            chunk = await asyncio.to_thread(handle.read, min(config.STREAM_CHUNK_BYTES, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            await response.write(chunk)
        await response.write_eof()
        return response
    except OSError as exc:
        if is_client_disconnect(exc):
            logger.debug("Client disconnected while streaming %s", selection.entry)
            return response
        logger.error("%s %s: %s", _SEND_FAILED, selection.entry, exc)
        if not response.prepared:
            return _error_response(safe_error_message(exc, _SEND_FAILED), 500)
        raise
    finally:
        handle.close()


def register_image_routes(routes: web.RouteTableDef) -> None:
    """
    Register the public image API.
    """

    @routes.get("/api/random-image")
    async def random_image(request: web.Request) -> web.StreamResponse:
        svc, error = _require_services(request)
        if error:
            return _result_error_response(error)

        service: IndexService = svc["index"]
        category = _category_param(request)
        picked = await service.select(category)
        if not picked.ok or picked.data is None:
            logger.debug("No image served (category=%r): %s", category, picked.reason or picked.error)
            return _result_error_response(picked)
        return await _stream_selection(request, picked.data)

    @routes.get("/api/images/info")
    async def images_info(request: web.Request) -> web.Response:
        svc, error = _require_services(request)
        if error:
            return _result_error_response(error)

        service: IndexService = svc["index"]
        stats = service.stats()
        return _json_response(
            {
                "totalImages": stats.total,
                "lastUpdated": format_timestamp(stats.last_updated),
                "scanTimeMs": stats.scan_time_ms,
                "categories": _categories_payload(stats),
                "imageFolder": str(service.root),
            }
        )

    @routes.get("/api/images/categories")
    async def images_categories(request: web.Request) -> web.Response:
        svc, error = _require_services(request)
        if error:
            return _result_error_response(error)

        service: IndexService = svc["index"]
        return _json_response({"categories": _categories_payload(service.stats())})

    @routes.post("/api/images/rescan")
    async def images_rescan(request: web.Request) -> web.Response:
        svc, error = _require_services(request)
        if error:
            return _json_response({"success": False, "error": error.error}, status=503)

        service: IndexService = svc["index"]
        logger.info("Initiating manual rescan...")
        try:
            result: Result[IndexStats] = await service.rescan()
        except Exception as exc:
            logger.error("Error during manual rescan: %s", exc, exc_info=True)
            return _json_response(
                {"success": False, "error": safe_error_message(exc, "Rescan failed")},
                status=500,
            )

        if not result.ok or result.data is None:
            message = result.error or "Rescan failed"
            if result.code == ErrorCode.DIRECTORY_UNREADABLE.value:
                message = "Image directory is missing or cannot be read"
            return _json_response({"success": False, "error": message}, status=500)

        skipped = result.meta.get("skipped") or []
        return _json_response({"success": True, "stats": _stats_payload(result.data, skipped=len(skipped))})
