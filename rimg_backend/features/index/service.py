"""
Index service: owns the index, the selector and the watcher for one root.
"""
import asyncio
from pathlib import Path
from typing import Any

from rimg_shared import ErrorCode, Result, get_logger, log_success

from .catalog import ImageIndex
from .fs_walker import scan_root
from .models import IndexSettings, IndexStats, Selection
from .selector import RandomSelector
from .watcher import ImageWatcher

logger = get_logger(__name__)


class IndexService:
    """
    Lifecycle and operations around the image index.

    Usage:
        service = IndexService(IndexSettings.from_config())
        await service.start()
        picked = await service.select("cats")
        ...
        await service.stop()
    """

    def __init__(
        self,
        settings: IndexSettings,
        *,
        index: ImageIndex | None = None,
        watcher: ImageWatcher | None = None,
    ):
        self.settings = settings
        self.index = index or ImageIndex()
        self.selector = RandomSelector(self.index, settings.root)
        if watcher is None and settings.watcher_enabled:
            watcher = ImageWatcher(self.index, settings)
        self.watcher = watcher
        self._rescan_lock = asyncio.Lock()

    @property
    def root(self) -> Path:
        return Path(self.settings.root)

    async def start(self) -> Result[IndexStats]:
        """
        Prepare the root, start watching, then run the initial scan.

        The watcher starts first so files landing during the scan are not
        missed; the index journals them and replays them after the swap.
        """
        self._ensure_root()
        if self.watcher is not None:
            await self.watcher.start()
        return await self.rescan()

    async def stop(self) -> None:
        if self.watcher is not None:
            await self.watcher.stop()

    def _ensure_root(self) -> None:
        root = self.root
        if root.is_dir() or not self.settings.create_root:
            return
        logger.warning("Image directory %s does not exist, attempting to create it", root)
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Failed to create image directory %s: %s", root, exc)

    async def rescan(self) -> Result[IndexStats]:
        """Full rescan: walk in a worker thread, then swap the index atomically."""
        async with self._rescan_lock:
            logger.info("Scanning directory: %s", self.root)
            self.index.begin_rebuild()
            try:
                scanned = await asyncio.to_thread(
                    scan_root,
                    self.root,
                    self.settings.extensions,
                    self.settings.ignore_regex(),
                )
            except BaseException:
                self.index.abort_rebuild()
                raise

            if not scanned.ok or scanned.data is None:
                self.index.abort_rebuild()
                logger.error("Scan of %s failed: %s", self.root, scanned.error)
                return Result.Err(scanned.code or ErrorCode.SCAN_FAILED, scanned.error or "Scan failed")

            stats = self.index.replace(scanned.data)
            log_success(
                logger,
                f"Scan complete. Found {stats.total} images in {stats.scan_time_ms or 0.0:.0f}ms",
            )
            return Result.Ok(stats, skipped=list(scanned.data.skipped))

    async def select(self, category: str | None = None) -> Result[Selection]:
        return await self.selector.select(category)

    def stats(self) -> IndexStats:
        return self.index.stats()

    def status(self) -> dict[str, Any]:
        watcher = self.watcher
        return {
            "totalImages": len(self.index),
            "watcher": {
                "enabled": watcher is not None,
                "running": bool(watcher and watcher.is_running),
                "pending": watcher.get_pending_count() if watcher else 0,
            },
        }
