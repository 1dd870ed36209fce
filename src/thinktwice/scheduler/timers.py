"""One-shot wake-up timers on the asyncio event loop.

Live timers are a disposable cache: they vanish with the process. The
persisted ``reminder_time`` is the source of truth, and ``restore()`` rebuilds
the schedule at startup, handing reminders that matured while we were down
to an overdue handler instead of arming a wake-up in the past.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable

from thinktwice.errors import SchedulingUnavailable
from thinktwice.store.types import Reminder
from thinktwice.timeutil import Clock, now_ms

logger = logging.getLogger(__name__)

FireHandler = Callable[[str], "Awaitable[None] | None"]
OverdueHandler = Callable[[Reminder], "Awaitable[None] | None"]


class TimerService:
    """Arms, disarms and restores reminder wake-ups."""

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._handler: FireHandler | None = None
        self._tasks: set[asyncio.Task] = set()
        self._in_flight: set[str] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError as e:
            raise SchedulingUnavailable("no running event loop") from e

    # ── Arm / disarm ─────────────────────────────────────────

    def arm(self, timer_id: str, when_ms: int) -> bool:
        """Schedule a wake-up at ``when_ms``. Never raises; False on failure."""
        try:
            loop = self._get_loop()
        except SchedulingUnavailable as e:
            logger.error("Cannot arm timer %s: %s", timer_id, e)
            return False

        self.disarm(timer_id)
        delay = max(0.0, (when_ms - self._clock()) / 1000)
        self._handles[timer_id] = loop.call_later(delay, self._fire, timer_id)
        logger.info("Armed timer %s (fires in %.1fs)", timer_id, delay)
        return True

    def disarm(self, timer_id: str) -> None:
        handle = self._handles.pop(timer_id, None)
        if handle is not None:
            handle.cancel()
            logger.info("Disarmed timer %s", timer_id)

    def is_armed(self, timer_id: str) -> bool:
        return timer_id in self._handles

    def is_in_flight(self, timer_id: str) -> bool:
        """Fired, with its handler still running."""
        return timer_id in self._in_flight

    def armed_ids(self) -> set[str]:
        return set(self._handles)

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    # ── Firing ───────────────────────────────────────────────

    def on_fire(self, handler: FireHandler) -> None:
        """Register the process-wide fire callback (replaces any previous one)."""
        self._handler = handler

    def _fire(self, timer_id: str) -> None:
        self._handles.pop(timer_id, None)
        logger.info("Timer fired: %s", timer_id)
        if self._handler is None:
            logger.warning("Timer %s fired with no handler registered", timer_id)
            return
        self._in_flight.add(timer_id)
        task = asyncio.ensure_future(self._run_handler(timer_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda _: self._in_flight.discard(timer_id))

    async def _run_handler(self, timer_id: str) -> None:
        try:
            result = self._handler(timer_id)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Timer handler failed for %s: %s", timer_id, e)

    async def drain(self) -> None:
        """Wait for fire handlers that are still running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Restart recovery ─────────────────────────────────────

    async def restore(
        self,
        reminders: Iterable[Reminder],
        overdue_handler: OverdueHandler,
    ) -> tuple[int, int]:
        """Rebuild wake-ups for pending reminders. Returns (armed, overdue)."""
        now = self._clock()
        armed = overdue = 0
        for reminder in reminders:
            if not reminder.is_pending:
                continue
            if reminder.reminder_time > now:
                if self.arm(reminder.id, reminder.reminder_time):
                    armed += 1
                continue

            logger.info("Found overdue reminder: %s", reminder.id)
            overdue += 1
            try:
                result = overdue_handler(reminder)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Overdue handler failed for %s: %s", reminder.id, e)

        logger.info("Timer restore: %d armed, %d overdue", armed, overdue)
        return armed, overdue
