"""
File system watcher keeping the image index in sync with the watched root.

watchdog delivers raw events on its observer thread. They are moved onto the
event loop right away; from there on, everything (pending writes, the poll
timer, the event queue) is owned by the loop thread, which keeps the
add/remove order of a given path intact.

A created file is reported only once its size and mtime have stopped changing
for the stability threshold, so a half-copied image is never served.
"""
import asyncio
import os
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from rimg_shared import get_logger, is_image_file

from .catalog import ImageIndex
from .fs_walker import relative_entry
from .models import IndexSettings, WatchEvent

logger = get_logger(__name__)

_OBSERVER_JOIN_TIMEOUT_S = 2.0


@dataclass
class _PendingWrite:
    path: str
    signature: tuple[int, int] | None
    changed_at: float


class WriteSettledHandler(FileSystemEventHandler):
    """
    Turns watchdog events into `WatchEvent`s.

    - Ignores directories, dot-paths and non-image extensions
    - Holds created/modified files until their writes have settled
    - Reports deletions immediately, cancelling any pending add
    - Splits moves into a removal of the source and a (settled) add of the target
    """

    def __init__(
        self,
        root: Path | str,
        loop: asyncio.AbstractEventLoop,
        emit: Callable[[WatchEvent], Any],
        *,
        extensions: frozenset[str],
        ignore: re.Pattern[str],
        stability_ms: int = 2000,
        poll_ms: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self._root = os.path.abspath(os.fspath(root))
        self._loop = loop
        self._emit = emit
        self._extensions = extensions
        self._ignore = ignore
        self._stability_s = max(0, stability_ms) / 1000.0
        self._poll_s = max(1, poll_ms) / 1000.0
        self._clock = clock

        # Loop-thread state only.
        self._pending: dict[str, _PendingWrite] = {}
        self._poll_timer: asyncio.TimerHandle | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # watchdog thread
    # ------------------------------------------------------------------

    def on_created(self, event: FileSystemEvent):
        if event.is_directory:
            return
        self._post(self._track, os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent):
        # Slow or network copies keep emitting modifications after creation.
        if event.is_directory:
            return
        self._post(self._track, os.fsdecode(event.src_path))

    def on_deleted(self, event: FileSystemEvent):
        if event.is_directory:
            return
        self._post(self._forget, os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent):
        if event.is_directory:
            return
        self._post(self._moved, os.fsdecode(event.src_path), os.fsdecode(event.dest_path))

    def _post(self, fn: Callable[..., None], *args: str) -> None:
        # Raising here would kill the observer's emitter thread.
        try:
            self._loop.call_soon_threadsafe(self._guarded, fn, *args)
        except RuntimeError as exc:
            logger.debug("Watcher event dropped, loop unavailable: %s", exc)
        except Exception as exc:
            logger.warning("Watcher event dispatch failed: %s", exc)

    # ------------------------------------------------------------------
    # loop thread
    # ------------------------------------------------------------------

    def _guarded(self, fn: Callable[..., None], *args: str) -> None:
        if self._closed:
            return
        try:
            fn(*args)
        except Exception as exc:
            logger.warning("Watcher failed to handle %s: %s", args[0] if args else "?", exc, exc_info=True)

    def relative(self, path: str) -> str | None:
        """Relative entry for `path`, or None when it must be ignored."""
        if not path:
            return None
        rel = relative_entry(self._root, os.path.abspath(path))
        if rel == "." or rel == ".." or rel.startswith("../"):
            return None
        if self._ignore.search(rel):
            return None
        if not is_image_file(rel, self._extensions):
            return None
        return rel

    def _track(self, path: str) -> None:
        rel = self.relative(path)
        if rel is None:
            return
        now = self._clock()
        signature = _file_signature(path)
        state = self._pending.get(rel)
        if state is None:
            self._pending[rel] = _PendingWrite(path=path, signature=signature, changed_at=now)
        else:
            state.path = path
            state.signature = signature
            state.changed_at = now
        self._schedule_poll()

    def _forget(self, path: str) -> None:
        rel = self.relative(path)
        if rel is None:
            return
        self._pending.pop(rel, None)
        self._emit(WatchEvent.removed(rel))

    def _moved(self, src_path: str, dest_path: str) -> None:
        self._forget(src_path)
        self._track(dest_path)

    def _schedule_poll(self) -> None:
        if self._poll_timer is None and not self._closed:
            self._poll_timer = self._loop.call_later(self._poll_s, self._poll)

    def _poll(self) -> None:
        self._poll_timer = None
        now = self._clock()
        for rel, state in list(self._pending.items()):
            signature = _file_signature(state.path)
            if signature is None:
                # Vanished before settling; nothing was ever reported.
                self._pending.pop(rel, None)
                continue
            if signature != state.signature:
                state.signature = signature
                state.changed_at = now
                continue
            if now - state.changed_at >= self._stability_s:
                self._pending.pop(rel, None)
                self._emit(WatchEvent.added(rel))
        if self._pending:
            self._schedule_poll()

    def flush_pending(self) -> int:
        """Report every pending file that still exists without waiting. Loop thread only."""
        flushed = 0
        for rel, state in list(self._pending.items()):
            self._pending.pop(rel, None)
            if _file_signature(state.path) is None:
                continue
            self._emit(WatchEvent.added(rel))
            flushed += 1
        return flushed

    def get_pending_count(self) -> int:
        return len(self._pending)

    def close(self) -> None:
        self._closed = True
        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None
        self._pending.clear()


def _file_signature(path: str) -> tuple[int, int] | None:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st.st_size, st.st_mtime_ns


class ImageWatcher:
    """
    Watches the image root and feeds the index.

    Usage:
        watcher = ImageWatcher(index, settings)
        await watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        index: ImageIndex,
        settings: IndexSettings,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self._index = index
        self._settings = settings
        self._observer_factory = observer_factory
        self._observer: Any | None = None
        self._handler: WriteSettledHandler | None = None
        self._queue: asyncio.Queue[WatchEvent] | None = None
        self._dispatcher: asyncio.Task | None = None
        self._running = False

    async def start(self) -> bool:
        """Start watching the root recursively; False when the watch could not be set up."""
        if self._running:
            return True

        loop = asyncio.get_running_loop()
        root = Path(self._settings.root)
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        handler = WriteSettledHandler(
            root,
            loop,
            queue.put_nowait,
            extensions=self._settings.extensions,
            ignore=self._settings.ignore_regex(),
            stability_ms=self._settings.stability_ms,
            poll_ms=self._settings.poll_ms,
        )
        observer = self._observer_factory()
        try:
            observer.schedule(handler, str(root), recursive=True)
            observer.start()
        except Exception as exc:
            handler.close()
            logger.warning("Failed to watch %s: %s", root, exc)
            return False

        self._queue = queue
        self._handler = handler
        self._observer = observer
        self._dispatcher = loop.create_task(self._dispatch(queue), name="rimg-watch-dispatch")
        self._running = True
        logger.info("Now watching for changes in %s", root)
        return True

    async def _dispatch(self, queue: "asyncio.Queue[WatchEvent]") -> None:
        """Single consumer: apply queued events in arrival order, one batch at a time."""
        while True:
            batch = [await queue.get()]
            while True:
                try:
                    batch.append(queue.get_nowait())
                except asyncio.QueueEmpty:
                    break
            self._apply(batch)

    def _apply(self, batch: list[WatchEvent]) -> None:
        try:
            self._index.apply_events(batch)
        except Exception as exc:
            logger.error("Failed to apply %d watch events: %s", len(batch), exc, exc_info=True)

    async def stop(self) -> None:
        """Stop the observer, apply what is already queued, and stop the dispatcher."""
        if not self._running:
            return

        observer, self._observer = self._observer, None
        if observer is not None:
            try:
                observer.stop()
                await asyncio.to_thread(observer.join, _OBSERVER_JOIN_TIMEOUT_S)
            except Exception as exc:
                logger.debug("Watcher stop error: %s", exc)

        if self._handler is not None:
            self._handler.close()
            self._handler = None

        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is not None:
            dispatcher.cancel()
            try:
                await dispatcher
            except asyncio.CancelledError:
                pass

        queue, self._queue = self._queue, None
        if queue is not None:
            leftover: list[WatchEvent] = []
            while not queue.empty():
                leftover.append(queue.get_nowait())
            if leftover:
                self._apply(leftover)

        self._running = False
        logger.info("File watcher stopped")

    def flush_pending(self) -> int:
        """Emit every pending (not yet settled) file now. Must run on the loop thread."""
        if not self._handler:
            return 0
        return self._handler.flush_pending()

    async def drain(self) -> None:
        """Apply everything currently queued (tests and rescans use this)."""
        if self._queue is None:
            return
        batch: list[WatchEvent] = []
        while not self._queue.empty():
            batch.append(self._queue.get_nowait())
        if batch:
            self._apply(batch)

    def get_pending_count(self) -> int:
        return self._handler.get_pending_count() if self._handler else 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def watched_directory(self) -> str:
        return str(self._settings.root)
