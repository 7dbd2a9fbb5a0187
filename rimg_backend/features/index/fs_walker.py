"""
Recursive directory scan producing the entries of a fresh index.

The walk is iterative (`os.scandir` + explicit stack), never follows
directory symlinks, and is meant to run on a worker thread.
"""
from __future__ import annotations

import os
import re
import time
from collections.abc import Iterator
from pathlib import Path

from rimg_shared import IMAGE_EXTENSIONS, ErrorCode, Result, get_logger, is_image_file

from .models import DEFAULT_IGNORE_PATTERN, ScanResult

logger = get_logger(__name__)


def relative_entry(root: Path | str, path: Path | str) -> str:
    """Relative POSIX-style entry for `path` under `root`."""
    rel = os.path.relpath(os.fspath(path), os.fspath(root))
    return rel.replace(os.sep, "/")


class FileSystemWalker:
    """
    Walks a directory tree and yields relative image entries.

    Subtrees that cannot be listed are logged, recorded in `skipped`, and
    left out; only the root itself is mandatory.
    """

    def __init__(
        self,
        root: Path | str,
        extensions: frozenset[str] = IMAGE_EXTENSIONS,
        ignore: re.Pattern[str] | str = DEFAULT_IGNORE_PATTERN,
    ) -> None:
        self.root = Path(root)
        self.extensions = extensions
        self.ignore = re.compile(ignore) if isinstance(ignore, str) else ignore
        self.skipped: list[str] = []

    def is_ignored(self, rel: str) -> bool:
        return bool(self.ignore.search(rel))

    def is_supported(self, name: str) -> bool:
        return is_image_file(name, self.extensions)

    def iter_entries(self) -> Iterator[str]:
        """
        Generator over relative image entries (streaming).

        Raises:
            OSError: the root itself cannot be listed
        """
        # Listing the root first lets its failure surface to the caller.
        with os.scandir(self.root) as it:
            root_entries = list(it)
        stack: list[tuple[str, list[os.DirEntry]]] = [("", root_entries)]
        while stack:
            prefix, entries = stack.pop()
            for entry in entries:
                rel = f"{prefix}/{entry.name}" if prefix else entry.name
                if self.is_ignored(rel):
                    continue
                if self._is_dir(entry):
                    children = self._list_subtree(entry.path, rel)
                    if children is not None:
                        stack.append((rel, children))
                    continue
                if self._is_file(entry) and self.is_supported(entry.name):
                    yield rel

    def _list_subtree(self, path: str, rel: str) -> list[os.DirEntry] | None:
        try:
            with os.scandir(path) as it:
                return list(it)
        except OSError as exc:
            logger.warning("Skipping unreadable directory %s: %s", rel, exc.strerror or exc)
            self.skipped.append(rel)
            return None

    @staticmethod
    def _is_dir(entry: os.DirEntry) -> bool:
        try:
            return entry.is_dir(follow_symlinks=False)
        except OSError:
            return False

    @staticmethod
    def _is_file(entry: os.DirEntry) -> bool:
        # Symlinks to files are indexed; symlinked directories are not walked.
        try:
            return entry.is_file(follow_symlinks=True)
        except OSError:
            return False


def scan_root(
    root: Path | str,
    extensions: frozenset[str] = IMAGE_EXTENSIONS,
    ignore: re.Pattern[str] | str = DEFAULT_IGNORE_PATTERN,
) -> Result[ScanResult]:
    """
    Recursively scan `root` for image files.

    Args:
        root: Directory to scan
        extensions: Lower-case, dot-prefixed extension allow-list
        ignore: Pattern matched against relative paths (dotfiles by default)

    Returns:
        Result[ScanResult]; DIRECTORY_UNREADABLE when the root is missing or
        cannot be listed.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        return Result.Err(
            ErrorCode.DIRECTORY_UNREADABLE,
            f"Image directory does not exist: {root_path}",
            root=str(root_path),
        )

    walker = FileSystemWalker(root_path, extensions, ignore)
    start = time.perf_counter()
    try:
        entries = list(walker.iter_entries())
    except OSError as exc:
        logger.error("Cannot list image directory %s: %s", root_path, exc)
        return Result.Err(
            ErrorCode.DIRECTORY_UNREADABLE,
            f"Image directory cannot be read: {exc}",
            root=str(root_path),
        )
    elapsed_ms = (time.perf_counter() - start) * 1000.0

    result = ScanResult(root=root_path, entries=entries, skipped=list(walker.skipped), scan_time_ms=elapsed_ms)
    if result.skipped:
        logger.warning("Scan of %s skipped %d unreadable subdirectories", root_path, len(result.skipped))
    return Result.Ok(result)
