"""Activity buffer shown on the web dashboard."""

from __future__ import annotations

import threading
import time
from collections import deque

MAX_LINES = 50

_log_buffer: deque[str] = deque(maxlen=MAX_LINES)
_lock = threading.Lock()


def configure(max_lines: int) -> None:
    """Resize the buffer, keeping the newest lines."""
    global _log_buffer
    with _lock:
        _log_buffer = deque(_log_buffer, maxlen=max(1, max_lines))


def add(msg: str) -> None:
    """Add a timestamped activity line."""
    line = f"{time.strftime('%H:%M:%S')} {msg}"
    with _lock:
        _log_buffer.append(line)


def get_lines() -> list[str]:
    """Get the current lines (newest last)."""
    with _lock:
        return list(_log_buffer)


def clear() -> None:
    with _lock:
        _log_buffer.clear()
