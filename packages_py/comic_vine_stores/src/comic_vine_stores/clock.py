"""
Wall-clock helpers shared by every store backend.

Stores call ``clock.now_ms()`` through the module so tests can patch a single
attribute to move time forward.
"""
import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_datetime(timestamp_ms: float) -> datetime:
    """Convert epoch milliseconds into an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
