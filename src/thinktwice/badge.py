"""Extension badge: how many reminders are due."""

from __future__ import annotations

from collections.abc import Iterable

from thinktwice.store.types import Reminder

BADGE_COLOR = "#8B5CF6"


def count_due_reminders(reminders: Iterable[Reminder], now: int) -> int:
    return sum(1 for r in reminders if r.is_due(now))


def badge_text(count: int) -> str:
    return str(count) if count > 0 else ""
