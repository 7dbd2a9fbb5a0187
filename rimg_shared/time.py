"""
Time utilities for timestamps.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone


def now() -> float:
    """Get current timestamp in seconds (float)."""
    return time.time()

def format_timestamp(ts: float | None = None) -> str | None:
    """
    Format a timestamp as an ISO 8601 UTC string.

    Args:
        ts: Timestamp in seconds; None stays None

    Returns:
        e.g. "2025-12-29T19:30:45.123Z", or None when `ts` is None
    """
    if ts is None:
        return None
    stamp = datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")
