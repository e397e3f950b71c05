"""Time-derived session identifiers."""

from __future__ import annotations

import threading
import time
from datetime import datetime

from ..serialization.truncation import to_base36

_lock = threading.Lock()
_last_ms = 0


def _next_millis() -> int:
    """Wall-clock milliseconds, strictly increasing within the process."""
    global _last_ms
    with _lock:
        now = int(time.time() * 1000)
        if now <= _last_ms:
            now = _last_ms + 1
        _last_ms = now
        return now


def generate_session_id(now: datetime | None = None) -> str:
    """
    Build ``session-YYYY-MM-DD-<base36 ms>``.

    The millisecond suffix is bumped when the clock stalls or steps back,
    so no id repeats within a process.
    """
    day = (now or datetime.now()).strftime("%Y-%m-%d")
    return f"session-{day}-{to_base36(_next_millis())}"


__all__ = ["generate_session_id"]
