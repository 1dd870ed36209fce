"""Product action manager: the four user decisions.

Each action is a short sequence of store writes plus a timer side effect,
with no transaction around it. The product write always comes first and is
never rolled back: if it fails the error reaches the caller, while failures
of the later reminder/timer steps are logged and the action still counts as
done ("state recorded, reminder maybe missing").
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from thinktwice.errors import StoreUnavailable
from thinktwice.store.types import Product, ProductState, Reminder, ReminderStatus
from thinktwice.timeutil import Clock, format_duration, now_ms

if TYPE_CHECKING:
    from thinktwice.history.journal import DecisionJournal
    from thinktwice.scheduler.timers import TimerService
    from thinktwice.store.entities import EntityStore

logger = logging.getLogger(__name__)


class ProductActionManager:
    """Product state transitions and reminder bookkeeping."""

    def __init__(
        self,
        store: EntityStore,
        timers: TimerService,
        journal: DecisionJournal | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.store = store
        self.timers = timers
        self.journal = journal
        self._clock = clock

    # ── Helpers ──────────────────────────────────────────────

    async def _upsert_state(self, product: Product, state: ProductState | None) -> Product:
        """Set state on an existing product, or create it with that state."""
        existing = await self.store.get_product(product.id)
        if existing is None:
            saved = product.with_state(state)
            await self.store.save_product(saved)
            logger.info("Product %s created with state %s", product.id, state)
            return saved
        await self.store.update_product_state(product.id, state)
        logger.info("Product %s state -> %s", product.id, state)
        return existing.with_state(state)

    async def _drop_reminder(self, reminder_id: str) -> None:
        """Delete a reminder and its wake-up. Logged, never raised."""
        try:
            deleted = await self.store.delete_reminder(reminder_id)
            if deleted:
                logger.info("Reminder deleted: %s", reminder_id)
        except StoreUnavailable as e:
            logger.error("Failed to delete reminder %s: %s", reminder_id, e)
        self.timers.disarm(reminder_id)

    def _journal(self, product: Product, note: str) -> None:
        if self.journal is not None:
            self.journal.record(product, note)

    # ── Actions ──────────────────────────────────────────────

    async def dont_need_it(self, product: Product, reminder_id: str | None = None) -> None:
        """Record "I don't need it". Terminal.

        With a reminder id (confirming early from a return visit) the
        reminder is completed and its wake-up cancelled.
        """
        logger.info("dont_need_it: %s (reminder=%s)", product.id, reminder_id)
        saved = await self._upsert_state(product, ProductState.DONT_NEED_IT)

        if reminder_id:
            try:
                await self.store.update_reminder(reminder_id, status=ReminderStatus.COMPLETED)
            except StoreUnavailable as e:
                logger.error("Failed to complete reminder %s: %s", reminder_id, e)
            self.timers.disarm(reminder_id)

        self._journal(saved, "Decided: don't need it")

    async def sleep_on_it(
        self,
        product: Product,
        duration_ms: int | None = None,
        tab_id: int | None = None,
    ) -> str | None:
        """Start sleeping on a product. Returns the reminder id, None if it was not saved."""
        if duration_ms is None:
            duration_ms = (await self.store.get_settings()).default_duration
        if duration_ms <= 0:
            raise ValueError(f"duration must be positive, got {duration_ms}")

        logger.info("sleep_on_it: %s for %s", product.id, format_duration(duration_ms))
        saved = await self._upsert_state(product, ProductState.SLEEPING_ON_IT)

        # Supersede what we can see; a concurrent writer can still slip one in
        try:
            for stale in await self.store.pending_reminders_for(product.id):
                logger.info("Superseding pending reminder %s for %s", stale.id, product.id)
                await self._drop_reminder(stale.id)

            reminder = Reminder(
                id=str(uuid.uuid4()),
                product_id=product.id,
                reminder_time=self._clock() + duration_ms,
                duration=duration_ms,
            )
        except StoreUnavailable as e:
            logger.error("Failed to supersede reminders for %s: %s", product.id, e)
            return None

        # Marker goes first: saving the reminder notifies the creating tab,
        # which must not mistake its own reminder for an early return.
        if tab_id is not None:
            try:
                await self.store.mark_just_created(tab_id, reminder.id)
            except StoreUnavailable as e:
                logger.error("Failed to mark tab %s session: %s", tab_id, e)

        try:
            await self.store.save_reminder(reminder)
            logger.info("Reminder saved: %s", reminder.id)
        except StoreUnavailable as e:
            logger.error("Failed to save reminder for %s: %s", product.id, e)
            return None

        if not self.timers.arm(reminder.id, reminder.reminder_time):
            logger.warning(
                "Reminder %s saved without a live wake-up; restore or sweep will catch it",
                reminder.id,
            )

        self._journal(saved, f"Sleeping on it for {format_duration(duration_ms)}")
        return reminder.id

    async def need_it(
        self,
        product_id: str,
        reminder_id: str | None = None,
        product: Product | None = None,
    ) -> None:
        """Record "I need it". Terminal; drops the reminder if one is given."""
        logger.info("need_it: %s (reminder=%s)", product_id, reminder_id)
        if product is not None:
            saved = await self._upsert_state(product, ProductState.I_NEED_THIS)
        else:
            updated = await self.store.update_product_state(product_id, ProductState.I_NEED_THIS)
            saved = await self.store.get_product(product_id) if updated else None

        if reminder_id:
            await self._drop_reminder(reminder_id)

        if saved is not None:
            self._journal(saved, "Decided: I need it")

    async def changed_my_mind(self, product_id: str, reminder_id: str | None = None) -> None:
        """Back to neutral: the product becomes eligible for prompts again."""
        logger.info("changed_my_mind: %s (reminder=%s)", product_id, reminder_id)
        await self.store.update_product_state(product_id, None)

        if reminder_id:
            await self._drop_reminder(reminder_id)

        saved = await self.store.get_product(product_id)
        if saved is not None:
            self._journal(saved, "Changed my mind")

    async def dismiss_reminder(self, reminder_id: str) -> Reminder | None:
        """Mark a reminder dismissed ("Not interested" in the summary or a notification)."""
        logger.info("dismiss_reminder: %s", reminder_id)
        reminder = await self.store.update_reminder(reminder_id, status=ReminderStatus.DISMISSED)
        self.timers.disarm(reminder_id)
        return reminder
