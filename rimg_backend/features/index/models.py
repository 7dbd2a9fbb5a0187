"""
Value types shared by the index, the watcher, and the selector.
"""
from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Literal

from rimg_shared import IMAGE_EXTENSIONS, ROOT_CATEGORY

EventKind = Literal["added", "removed"]
ADDED: EventKind = "added"
REMOVED: EventKind = "removed"

DEFAULT_IGNORE_PATTERN = r"(^|[/\\])\."


def category_of(entry: str) -> str:
    """Category of a relative entry: its parent directory, or "root"."""
    parent = posixpath.dirname(entry)
    return parent if parent else ROOT_CATEGORY


@dataclass(frozen=True)
class WatchEvent:
    """Normalized filesystem change, relative to the watched root."""

    kind: EventKind
    path: str

    @classmethod
    def added(cls, path: str) -> "WatchEvent":
        return cls(ADDED, path)

    @classmethod
    def removed(cls, path: str) -> "WatchEvent":
        return cls(REMOVED, path)


@dataclass(frozen=True)
class CategoryCount:
    name: str
    count: int

    def to_dict(self) -> dict:
        return {"name": self.name, "count": self.count}


@dataclass(frozen=True)
class IndexStats:
    """Read-only view of one index snapshot."""

    total: int
    last_updated: float | None
    categories: tuple[CategoryCount, ...] = ()
    scan_time_ms: float | None = None

    def per_category(self) -> dict[str, int]:
        return {c.name: c.count for c in self.categories}


@dataclass
class ScanResult:
    """Outcome of a full recursive scan."""

    root: Path
    entries: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    scan_time_ms: float = 0.0


@dataclass(frozen=True)
class Selection:
    """A confirmed entry ready to be streamed; `handle` is open and owned by the caller."""

    entry: str
    path: Path
    content_type: str
    size: int = 0
    handle: BinaryIO | None = field(default=None, compare=False, repr=False)

    def close(self) -> None:
        if self.handle is not None:
            self.handle.close()


@dataclass(frozen=True)
class IndexSettings:
    """Read-only parameters consumed by the index core."""

    root: Path
    extensions: frozenset[str] = IMAGE_EXTENSIONS
    ignore_pattern: str = DEFAULT_IGNORE_PATTERN
    stability_ms: int = 2000
    poll_ms: int = 100
    watcher_enabled: bool = True
    create_root: bool = False

    def ignore_regex(self) -> re.Pattern[str]:
        return re.compile(self.ignore_pattern)

    @classmethod
    def from_config(cls, root: Path | str | None = None, **overrides) -> "IndexSettings":
        """Build settings from `rimg_backend.config`, with keyword overrides."""
        from ... import config

        values = {
            "root": Path(root) if root is not None else config.IMAGE_FOLDER_PATH,
            "extensions": config.SUPPORTED_EXTENSIONS,
            "ignore_pattern": config.IGNORE_PATTERN,
            "stability_ms": config.WATCHER_STABILITY_MS,
            "poll_ms": config.WATCHER_POLL_MS,
            "watcher_enabled": config.WATCHER_ENABLED,
            "create_root": config.CREATE_IMAGE_FOLDER,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
