"""Millisecond wall clock shared by all time-based components."""

from __future__ import annotations

import time
from datetime import date, datetime
from typing import Callable

# Returns epoch milliseconds. Injected everywhere so tests can freeze time.
Clock = Callable[[], float]

MINUTE_MS = 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def local_date(timestamp_ms: float) -> date:
    """Local calendar day for an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000).date()
