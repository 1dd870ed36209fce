"""Scheduler for periodic upkeep using pure asyncio.

Jobs:
- Due-check sweep: complete due reminders whose wake-up was never armed
- Badge: recount due reminders and publish the badge text
- Store watch: pick up writes made by other processes (file backend only)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from thinktwice.store import JsonFileBackend

if TYPE_CHECKING:
    from thinktwice.config import ThinkTwiceConfig
    from thinktwice.core import ThinkTwice

logger = logging.getLogger(__name__)

BadgeCallback = Callable[[str], None]


class Scheduler:
    """Simple asyncio-based scheduler for periodic tasks."""

    def __init__(
        self,
        app: ThinkTwice,
        config: ThinkTwiceConfig,
        on_badge: BadgeCallback | None = None,
    ) -> None:
        self._app = app
        self._config = config
        self._interval = config.scheduler.badge_interval
        self._on_badge = on_badge
        self._last_badge: str | None = None

    async def start(self, shutdown_event: asyncio.Event) -> None:
        """Run scheduled jobs until shutdown_event is set."""
        logger.info("Scheduler started (interval=%ds)", self._interval)

        watcher: asyncio.Task | None = None
        if isinstance(self._app.backend, JsonFileBackend):
            watcher = asyncio.create_task(
                self._app.backend.watch(shutdown_event, self._config.scheduler.watch_interval)
            )

        try:
            await self.run_once()
            while not shutdown_event.is_set():
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self._interval)
                    break  # shutdown requested
                except asyncio.TimeoutError:
                    pass  # interval elapsed, run jobs

                await self.run_once()
        finally:
            if watcher is not None:
                if not shutdown_event.is_set():
                    watcher.cancel()
                await asyncio.gather(watcher, return_exceptions=True)
            logger.info("Scheduler stopped.")

    async def run_once(self) -> None:
        await self._sweep()
        await self._badge()

    async def _sweep(self) -> None:
        try:
            completed = await self._app.sweep_due()
            if completed:
                logger.info("Sweep completed %d overdue reminder(s)", completed)
        except Exception as e:
            logger.error("Due-check sweep failed: %s", e)

    async def _badge(self) -> None:
        text = await self._app.badge()
        if text == self._last_badge:
            return
        self._last_badge = text
        logger.info("Badge: %s", text or "(clear)")
        if self._on_badge is not None:
            try:
                self._on_badge(text)
            except Exception as e:
                logger.error("Badge callback failed: %s", e)
