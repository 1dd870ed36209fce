"""ThinkTwice hub: builds the components and exposes the inbound API.

Responsibilities:
1. Build the shared entity store over the configured backend
2. Route the timer fire callback to the completion handler
3. Restore wake-ups from persisted reminders at startup
4. Expose the inbound API used by page and popup contexts:
   lifecycle actions, page decisions, pause/resume, tab ids, summary
5. Periodic upkeep for the scheduler: due-check sweep and badge text
"""

from __future__ import annotations

import itertools
import logging
import webbrowser
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from thinktwice.actions import ProductActionManager
from thinktwice.badge import badge_text, count_due_reminders
from thinktwice.completion import CompletionHandler
from thinktwice.config import ThinkTwiceConfig
from thinktwice.extractor import PageExtractor, PageInfo, product_id_from_url
from thinktwice.gate import Decision, PageContext
from thinktwice.history import DecisionJournal
from thinktwice.notifications import (
    CommandNotificationSink,
    LogNotificationSink,
    NotificationCenter,
    NotificationSink,
)
from thinktwice.scheduler.timers import TimerService
from thinktwice.store import EntityStore, JsonFileBackend
from thinktwice.store.types import Product, Reminder
from thinktwice.timeutil import PAUSE_PRESETS, Clock, format_time_remaining, now_ms

if TYPE_CHECKING:
    from thinktwice.notifications import OpenUrl
    from thinktwice.store import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class Summary:
    """What the popup shows: pending reminders and the pause state."""

    pending: list[tuple[Reminder, Product | None]] = field(default_factory=list)
    due_count: int = 0
    snooze_until: int | None = None
    global_closed: bool = False
    stats: dict[str, int] = field(default_factory=dict)


def render_summary(summary: Summary, now: int) -> str:
    lines = ["ThinkTwice: your saved reminders"]
    if summary.global_closed:
        lines.append("  (prompts closed until resumed)")
    elif summary.snooze_until:
        back = format_time_remaining(summary.snooze_until, now)
        lines.append(f"  (prompts paused, back {back})")

    if not summary.pending:
        lines.append("  No reminders yet")
    for reminder, product in summary.pending:
        name = product.name if product else reminder.product_id
        price = f" [{product.price}]" if product and product.price else ""
        remaining = format_time_remaining(reminder.reminder_time, now)
        lines.append(f"  - {name}{price}: reminder {remaining} ({reminder.id})")

    if summary.stats:
        lines.append(
            f"  Resisted {summary.stats.get('resisted', 0)}, "
            f"bought {summary.stats.get('bought', 0)}, "
            f"due now {summary.due_count}"
        )
    return "\n".join(lines)


class ThinkTwice:
    """Core hub shared by the daemon, the CLI and tests."""

    def __init__(
        self,
        config: ThinkTwiceConfig,
        *,
        backend: StorageBackend | None = None,
        sink: NotificationSink | None = None,
        clock: Clock = now_ms,
        open_url: OpenUrl | None = None,
    ) -> None:
        self.config = config
        self._clock = clock
        self.backend = backend or JsonFileBackend(config.store_path)
        self.store = EntityStore(self.backend)
        self.timers = TimerService(clock)
        self.journal = DecisionJournal(config.history_dir, clock)
        self.notifications = NotificationCenter(
            sink or self._build_sink(),
            self.store,
            open_summary=self._open_summary,
            open_url=open_url or webbrowser.open,
        )
        self.completion = CompletionHandler(
            self.store,
            self.notifications,
            self.journal,
            default_icon=config.notifications.default_icon,
        )
        self.actions = ProductActionManager(self.store, self.timers, self.journal, clock)
        self._tab_ids = itertools.count(1)
        self._pages: dict[int, PageContext] = {}

    def now(self) -> int:
        return self._clock()

    def _build_sink(self) -> NotificationSink:
        command = self.config.notifications.command
        if command:
            return CommandNotificationSink(command)
        return LogNotificationSink()

    # ── Lifecycle ────────────────────────────────────────────

    async def start(self) -> tuple[int, int]:
        """Register the fire handler and rebuild wake-ups. Returns (armed, overdue)."""
        self.timers.on_fire(self.completion.handle)
        reminders = await self.store.get_reminders()
        return await self.timers.restore(reminders, self.completion.handle_overdue)

    async def stop(self) -> None:
        for page in self._pages.values():
            page.close()
        self._pages.clear()
        self.timers.cancel_all()
        await self.timers.drain()

    # ── Tabs & pages ─────────────────────────────────────────

    def get_tab_id(self) -> int:
        """Allocate a transient tab id (scopes tab session state only)."""
        return next(self._tab_ids)

    async def open_page(
        self,
        marketplace: str,
        url: str,
        page: PageInfo | None = None,
        tab_id: int | None = None,
    ) -> PageContext | None:
        """Start a live gate for a product page. None if the URL is not a product page.

        Raises UnsupportedMarketplace for unknown marketplaces.
        """
        product_id = product_id_from_url(marketplace, url)
        if product_id is None:
            logger.debug("Not a product page: %s", url)
            return None

        observed = PageExtractor(page or PageInfo(url=url), self._clock).extract(
            marketplace, product_id
        )
        if tab_id is None:
            tab_id = self.get_tab_id()
        self.close_page(tab_id)

        context = PageContext(
            self.store,
            observed.id,
            tab_id,
            observed=observed,
            clock=self._clock,
            read_timeout=self.config.gate.read_timeout,
        )
        self._pages[tab_id] = context
        await context.open()
        return context

    def close_page(self, tab_id: int) -> None:
        context = self._pages.pop(tab_id, None)
        if context is not None:
            context.close()

    async def decide(
        self,
        product_key: str,
        tab_id: int | None = None,
        observed: Product | None = None,
    ) -> Decision:
        """One-shot gate evaluation without subscribing to changes."""
        context = PageContext(
            self.store,
            product_key,
            tab_id,
            observed=observed,
            clock=self._clock,
            read_timeout=self.config.gate.read_timeout,
        )
        return await context.refresh()

    # ── Lifecycle actions ────────────────────────────────────

    async def dont_need_it(self, product: Product, reminder_id: str | None = None) -> None:
        await self.actions.dont_need_it(product, reminder_id)

    async def sleep_on_it(
        self,
        product: Product,
        duration_ms: int | None = None,
        tab_id: int | None = None,
    ) -> str | None:
        return await self.actions.sleep_on_it(product, duration_ms, tab_id)

    async def need_it(
        self,
        product_id: str,
        reminder_id: str | None = None,
        product: Product | None = None,
    ) -> None:
        await self.actions.need_it(product_id, reminder_id, product)

    async def changed_my_mind(self, product_id: str, reminder_id: str | None = None) -> None:
        await self.actions.changed_my_mind(product_id, reminder_id)

    async def dismiss_reminder(self, reminder_id: str) -> Reminder | None:
        return await self.actions.dismiss_reminder(reminder_id)

    # ── Global pause ─────────────────────────────────────────

    async def pause(self, preset: str) -> None:
        """Apply a pause-menu preset: ``close`` or a timed snooze."""
        if preset not in PAUSE_PRESETS:
            raise ValueError(f"Unknown pause preset: {preset} (choose from {list(PAUSE_PRESETS)})")
        duration = PAUSE_PRESETS[preset]
        if duration is None:
            await self.store.set_globally_closed(True)
        else:
            await self.store.set_snooze_until(self._clock() + duration)

    async def resume(self) -> None:
        await self.store.clear_snooze()
        await self.store.set_globally_closed(False)

    # ── Upkeep ───────────────────────────────────────────────

    async def sweep_due(self) -> int:
        """Complete due reminders that have no live wake-up. Returns how many."""
        now = self._clock()
        completed = 0
        for reminder in await self.store.get_reminders():
            if not reminder.is_due(now):
                continue
            if self.timers.is_armed(reminder.id) or self.timers.is_in_flight(reminder.id):
                continue
            logger.info("Sweep found due reminder without a timer: %s", reminder.id)
            if await self.completion.handle(reminder.id):
                completed += 1
        return completed

    async def badge(self) -> str:
        reminders = await self.store.get_reminders()
        return badge_text(count_due_reminders(reminders, self._clock()))

    async def summary(self) -> Summary:
        now = self._clock()
        reminders = await self.store.get_reminders()
        products = await self.store.get_products()
        pending = sorted(
            (r for r in reminders if r.is_pending), key=lambda r: r.reminder_time
        )
        return Summary(
            pending=[(r, products.get(r.product_id)) for r in pending],
            due_count=count_due_reminders(reminders, now),
            snooze_until=await self.store.get_snooze_until(now),
            global_closed=await self.store.is_globally_closed(),
            stats=self.journal.stats(),
        )

    async def _open_summary(self) -> None:
        logger.info("\n%s", render_summary(await self.summary(), self.now()))
