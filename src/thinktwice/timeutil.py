"""Clock and human-readable time helpers.

All timestamps in ThinkTwice are epoch milliseconds, the same unit the
browser extension writes to storage.
"""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], int]

SECOND = 1000
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR

# Presets offered by the pause menu. None means "closed until re-enabled".
PAUSE_PRESETS: dict[str, int | None] = {
    "close": None,
    "30s": 30 * SECOND,
    "1hour": HOUR,
    "1day": DAY,
}


def now_ms() -> int:
    return int(time.time() * 1000)


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'}"


def format_duration(ms: int) -> str:
    """Render a duration by its largest whole unit.

    61000 -> "1 minute", 3661000 -> "1 hour", 500 -> "0 seconds".
    """
    seconds = max(ms, 0) // SECOND
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return _plural(days, "day")
    if hours > 0:
        return _plural(hours, "hour")
    if minutes > 0:
        return _plural(minutes, "minute")
    return _plural(seconds, "second")


def format_time_remaining(reminder_time: int, now: int) -> str:
    """Summary-view rendering of how long until a reminder is due."""
    diff = reminder_time - now
    if diff <= 0:
        return "Now"

    hours = diff // HOUR
    days = hours // 24
    if days > 0:
        return f"in {_plural(days, 'day')}"
    if hours > 0:
        return f"in {_plural(hours, 'hour')}"
    return f"in {_plural(diff // MINUTE, 'minute')}"
