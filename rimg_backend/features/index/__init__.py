"""
Index feature - directory scan, change watching, and random selection.
"""
from .catalog import ImageIndex, IndexSnapshot
from .fs_walker import FileSystemWalker, scan_root
from .models import IndexSettings, IndexStats, ScanResult, Selection, WatchEvent, category_of
from .selector import RandomSelector, StaleEntryError
from .service import IndexService
from .watcher import ImageWatcher, WriteSettledHandler

__all__ = [
    "ImageIndex",
    "IndexSnapshot",
    "FileSystemWalker",
    "scan_root",
    "IndexSettings",
    "IndexStats",
    "ScanResult",
    "Selection",
    "WatchEvent",
    "category_of",
    "RandomSelector",
    "StaleEntryError",
    "IndexService",
    "ImageWatcher",
    "WriteSettledHandler",
]
