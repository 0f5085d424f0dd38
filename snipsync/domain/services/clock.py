from __future__ import annotations

import time
from typing import Callable, Optional

Clock = Callable[[], int]


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def advance(previous: Optional[int], now: int) -> int:
    """Timestamp for a mutation: never lower than (or equal to) the previous one."""
    if previous is None:
        return now
    return max(int(previous) + 1, now)
