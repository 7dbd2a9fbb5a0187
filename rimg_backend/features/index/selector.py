"""
Random selection with self-healing eviction of stale entries.

A picked entry is confirmed by opening it. If the file has vanished since it
was indexed, the entry is evicted and another one is drawn, at most N times
where N is the index size when the request started. The open handle travels
with the `Selection`, so a file cannot disappear between confirmation and
streaming.
"""
from __future__ import annotations

import asyncio
import os
import stat as stat_mod
from pathlib import Path
from typing import BinaryIO

from rimg_shared import REASON_NO_VALID_ENTRIES, ErrorCode, Result, content_type_for, get_logger

from .catalog import ImageIndex
from .models import Selection

logger = get_logger(__name__)

# Errors meaning "this entry no longer points at a regular file".
_STALE_ERRORS = (FileNotFoundError, NotADirectoryError, IsADirectoryError)


class StaleEntryError(Exception):
    """An indexed entry whose file is gone (or is no longer a regular file)."""

    def __init__(self, entry: str, cause: BaseException | None = None) -> None:
        super().__init__(entry)
        self.entry = entry
        self.cause = cause


def resolve_entry(root: Path, entry: str) -> Path:
    return root.joinpath(*entry.split("/"))


def _open_image(path: Path) -> tuple[BinaryIO, int]:
    """Open `path` for reading; worker thread only."""
    handle = open(path, "rb")
    try:
        st = os.fstat(handle.fileno())
        if not stat_mod.S_ISREG(st.st_mode):
            raise IsADirectoryError(f"Not a regular file: {path}")
    except BaseException:
        handle.close()
        raise
    return handle, st.st_size


def _close_opened(fut: asyncio.Future) -> None:
    # The open finished after its caller went away.
    if fut.cancelled() or fut.exception() is not None:
        return
    handle, _size = fut.result()
    handle.close()


async def _open_guarded(path: Path) -> tuple[BinaryIO, int]:
    """
    Open in a worker thread without leaking the handle on cancellation.

    The thread cannot be interrupted; if the awaiting task is cancelled, the
    handle it eventually produces is closed as soon as it exists.
    """
    fut = asyncio.ensure_future(asyncio.to_thread(_open_image, path))
    try:
        return await asyncio.shield(fut)
    except asyncio.CancelledError:
        fut.add_done_callback(_close_opened)
        raise


class RandomSelector:
    def __init__(self, index: ImageIndex, root: Path | str) -> None:
        self._index = index
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    async def select(self, category: str | None = None) -> Result[Selection]:
        """
        Return an opened, servable entry. The caller owns `Selection.handle`.

        Returns:
            Result[Selection]; NOT_FOUND errors from the index are passed
            through untouched on the first draw. Once an entry has been
            evicted, running dry reports reason "no valid entries".
            STREAM_FAILURE when an existing file cannot be opened.
        """
        budget = max(1, len(self._index))
        evicted = 0
        while True:
            picked = self._index.get_random_entry(category)
            if not picked.ok or picked.data is None:
                if evicted:
                    return _no_valid_entries(evicted)
                return picked

            entry = picked.data
            try:
                selection = await self._confirm(entry)
            except StaleEntryError:
                self._index.evict(entry)
                evicted += 1
                if evicted >= budget:
                    return _no_valid_entries(evicted)
                continue
            except OSError as exc:
                logger.error("Failed to open %s: %s", entry, exc.strerror or exc)
                return Result.Err(ErrorCode.STREAM_FAILURE, "Failed to send image", entry=entry)
            return Result.Ok(selection, attempts=evicted + 1)

    async def _confirm(self, entry: str) -> Selection:
        path = resolve_entry(self._root, entry)
        try:
            handle, size = await _open_guarded(path)
        except _STALE_ERRORS as exc:
            logger.info("File not found: %s, retrying with another random image", entry)
            raise StaleEntryError(entry, exc) from exc
        return Selection(
            entry=entry,
            path=path,
            content_type=content_type_for(entry),
            size=size,
            handle=handle,
        )


def _no_valid_entries(evicted: int) -> Result[Selection]:
    return Result.Err(
        ErrorCode.NOT_FOUND,
        "No valid images found in the directory",
        reason=REASON_NO_VALID_ENTRIES,
        evicted=evicted,
    )
