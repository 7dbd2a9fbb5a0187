"""
In-memory image index with category buckets.

Readers grab the current `IndexSnapshot` (an immutable value) and never take
a lock. Writers serialize on one lock, build the next snapshot off to the side
and publish it with a single attribute assignment, so the flat entry set and
the category buckets are always observed together.
"""
from __future__ import annotations

import random
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from rimg_shared import (
    REASON_EMPTY_CATEGORY,
    REASON_EMPTY_INDEX,
    ErrorCode,
    Result,
    get_logger,
    now,
)

from .models import ADDED, REMOVED, CategoryCount, IndexStats, ScanResult, WatchEvent, category_of

logger = get_logger(__name__)

_EMPTY_MAP: Mapping = MappingProxyType({})


@dataclass(frozen=True)
class IndexSnapshot:
    """One consistent state of the index. Never mutated after publication."""

    entries: Mapping[str, str] = field(default_factory=lambda: _EMPTY_MAP)  # entry -> category
    flat: tuple[str, ...] = ()
    buckets: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: _EMPTY_MAP)
    last_updated: float | None = None
    scan_time_ms: float | None = None

    @classmethod
    def build(
        cls,
        entries: dict[str, str],
        *,
        last_updated: float | None,
        scan_time_ms: float | None,
    ) -> "IndexSnapshot":
        # Buckets are derived from the same mapping as the flat tuple; an
        # entry can never be in one and missing from the other.
        grouped: dict[str, list[str]] = {}
        for entry, category in entries.items():
            grouped.setdefault(category, []).append(entry)
        return cls(
            entries=MappingProxyType(entries),
            flat=tuple(entries),
            buckets=MappingProxyType({name: tuple(items) for name, items in grouped.items()}),
            last_updated=last_updated,
            scan_time_ms=scan_time_ms,
        )

    def stats(self) -> IndexStats:
        categories = tuple(
            CategoryCount(name, len(items)) for name, items in sorted(self.buckets.items())
        )
        return IndexStats(
            total=len(self.flat),
            last_updated=self.last_updated,
            categories=categories,
            scan_time_ms=self.scan_time_ms,
        )


class ImageIndex:
    """
    Authoritative set of known image entries, grouped by category.

    Mutations: `apply_event(s)`, `evict`, `replace` (full rebuild).
    Reads: `get_random_entry`, `stats`, `snapshot`, `contains`, `len()`.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._write_lock = threading.Lock()
        self._snapshot = IndexSnapshot()
        # Events applied while a rebuild is in flight; replayed on `replace`.
        self._journal: list[WatchEvent] | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> IndexSnapshot:
        return self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot.flat)

    def contains(self, entry: str) -> bool:
        return entry in self._snapshot.entries

    def stats(self) -> IndexStats:
        return self._snapshot.stats()

    def categories(self) -> tuple[CategoryCount, ...]:
        return self._snapshot.stats().categories

    def get_random_entry(self, category: str | None = None) -> Result[str]:
        """
        Pick a uniformly random entry, optionally scoped to one category.

        Returns:
            Result[str]; NOT_FOUND with reason "empty category" when the
            category is unknown or empty, "empty index" when nothing is indexed.
        """
        snap = self._snapshot
        if category is not None:
            bucket = snap.buckets.get(category)
            if not bucket:
                return Result.Err(
                    ErrorCode.NOT_FOUND,
                    f"No images found in category '{category}'",
                    reason=REASON_EMPTY_CATEGORY,
                    category=category,
                )
            return Result.Ok(self._rng.choice(bucket))

        if not snap.flat:
            return Result.Err(
                ErrorCode.NOT_FOUND,
                "No images found in the specified directory",
                reason=REASON_EMPTY_INDEX,
            )
        return Result.Ok(self._rng.choice(snap.flat))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply_event(self, event: WatchEvent) -> bool:
        """Apply one event; True when the index actually changed."""
        return self.apply_events((event,)) > 0

    def apply_events(self, events: Iterable[WatchEvent]) -> int:
        """
        Apply events in order and publish a single new snapshot.

        Duplicate adds and removals of absent entries are no-ops.

        Returns:
            Number of events that changed the index.
        """
        batch = list(events)
        changed = self._mutate(batch)
        if not changed:
            return 0
        if len(batch) == 1:
            verb = "added" if batch[0].kind == ADDED else "removed"
            logger.info("Image %s: %s", verb, batch[0].path)
        else:
            logger.info("Applied %d index changes (%d events)", changed, len(batch))
        return changed

    def evict(self, entry: str) -> bool:
        """Drop an entry whose file is gone; same effect as a `removed` event."""
        removed = self._mutate([WatchEvent.removed(entry)]) > 0
        if removed:
            logger.info("Removed non-existent file from index: %s", entry)
        return removed

    def _mutate(self, batch: list[WatchEvent]) -> int:
        with self._write_lock:
            if self._journal is not None:
                self._journal.extend(batch)
            current = self._snapshot
            entries, changed = _apply(current.entries, batch)
            if entries is None:
                return 0
            self._snapshot = IndexSnapshot.build(
                entries,
                last_updated=now(),
                scan_time_ms=current.scan_time_ms,
            )
            return changed

    def begin_rebuild(self) -> None:
        """Start journaling events so a concurrent `replace` does not lose them."""
        with self._write_lock:
            self._journal = []

    def abort_rebuild(self) -> None:
        with self._write_lock:
            self._journal = None

    def replace(self, scan: ScanResult) -> IndexStats:
        """
        Swap in the entries of a full scan in one step.

        Events journaled since `begin_rebuild` are replayed on top of the scan
        so changes that raced the walk are kept.
        """
        entries = {entry: category_of(entry) for entry in scan.entries}
        with self._write_lock:
            journal, self._journal = self._journal, None
            if journal:
                replayed, _ = _apply(entries, journal)
                if replayed is not None:
                    entries = replayed
            snap = IndexSnapshot.build(
                entries,
                last_updated=now(),
                scan_time_ms=scan.scan_time_ms,
            )
            self._snapshot = snap
        return snap.stats()


def _apply(entries: Mapping[str, str], events: Iterable[WatchEvent]) -> tuple[dict[str, str] | None, int]:
    """
    Apply `events` on top of `entries` without touching the input.

    Returns:
        (new mapping or None when nothing changed, number of effective events)
    """
    working: dict[str, str] | None = None
    changed = 0
    for event in events:
        current = entries if working is None else working
        if event.kind == ADDED:
            if event.path in current:
                continue
        elif event.kind == REMOVED:
            if event.path not in current:
                continue
        else:
            logger.warning("Ignoring unknown event kind %r for %s", event.kind, event.path)
            continue
        if working is None:
            working = dict(entries)
        if event.kind == ADDED:
            working[event.path] = category_of(event.path)
        else:
            del working[event.path]
        changed += 1
    return working, changed
