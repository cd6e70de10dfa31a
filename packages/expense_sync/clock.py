"""Epoch-millisecond clock and local display stamps.

Components take a ``clock`` callable (returning epoch milliseconds) so tests
can pin "now" without patching the standard library.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime

type Clock = Callable[[], int]

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def local_stamp(epoch_ms: int) -> tuple[str, str]:
    """Return ``(YYYY-MM-DD, HH:MM)`` in the host's local time zone."""

    dt = datetime.fromtimestamp(epoch_ms / 1000).astimezone()
    return dt.strftime("%Y-%m-%d"), dt.strftime("%H:%M")


__all__ = ["Clock", "MS_PER_MINUTE", "MS_PER_HOUR", "now_ms", "local_stamp"]
