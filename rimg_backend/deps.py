"""
Dependency injection - builds services.
Simple, debug-friendly DI without framework magic.
"""

from typing import Any

from rimg_shared import ErrorCode, Result, get_logger

from .features.index import IndexService, IndexSettings

logger = get_logger(__name__)


def build_services(settings: IndexSettings | None = None) -> Result[dict[str, Any]]:
    """
    Build the service graph for one image root.

    Nothing is started here; `start_services` runs the initial scan and the
    watcher once an event loop is available.
    """
    try:
        settings = settings or IndexSettings.from_config()
        index_service = IndexService(settings)
    except (OSError, ValueError) as exc:
        logger.error("Failed to initialize services: %s", exc)
        return Result.Err(ErrorCode.SERVICE_UNAVAILABLE, f"Failed to initialize services: {exc}")

    return Result.Ok(
        {
            "settings": settings,
            "index": index_service,
            "watcher": index_service.watcher,
        }
    )


async def start_services(services: dict[str, Any]) -> None:
    """
    Run the initial scan and start watching.

    An unreadable root is logged, not raised: the server keeps answering
    (404 until a later rescan succeeds).
    """
    index_service: IndexService = services["index"]
    result = await index_service.start()
    if not result.ok:
        logger.error("Initial scan failed: %s", result.error)


async def stop_services(services: dict[str, Any]) -> None:
    index_service: IndexService | None = services.get("index")
    if index_service is None:
        return
    try:
        await index_service.stop()
    except Exception as exc:
        logger.warning("Error while stopping services: %s", exc, exc_info=True)
