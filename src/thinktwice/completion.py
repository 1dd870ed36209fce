"""Completion handler: what happens when a reminder matures.

Runs from a live timer or from restore's overdue path. The user waited the
whole duration without buying, so the product becomes "don't need it", the
reminder is completed and a celebration notification goes out.

Every step is logged rather than fatal, and a second run for the same id is
a no-op: once the reminder is no longer pending there is nothing left to do.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from thinktwice.errors import StoreUnavailable
from thinktwice.notifications import Notification
from thinktwice.store.types import ProductState, Reminder, ReminderStatus
from thinktwice.timeutil import format_duration

if TYPE_CHECKING:
    from thinktwice.history.journal import DecisionJournal
    from thinktwice.notifications import NotificationCenter
    from thinktwice.store.entities import EntityStore
    from thinktwice.store.types import Product

logger = logging.getLogger(__name__)

DEFAULT_ICON = "icon128.png"


def build_celebration(
    product: Product, reminder: Reminder, default_icon: str = DEFAULT_ICON
) -> Notification:
    waited = format_duration(reminder.duration)
    return Notification(
        title="Celebration! You did it!",
        body=f"You didn't buy {product.name} after sleeping on it for {waited}.",
        icon=product.image or default_icon,
        context=f"You saved {product.price}" if product.price else "Great job resisting!",
        buttons=["View product"],
    )


class CompletionHandler:
    """Turns a matured reminder into a recorded "don't need it"."""

    def __init__(
        self,
        store: EntityStore,
        notifications: NotificationCenter | None = None,
        journal: DecisionJournal | None = None,
        default_icon: str = DEFAULT_ICON,
    ) -> None:
        self.store = store
        self.notifications = notifications
        self.journal = journal
        self.default_icon = default_icon

    async def handle(self, reminder_id: str) -> bool:
        """Complete one reminder. Returns True if this call did the work."""
        reminder = await self.store.get_reminder(reminder_id)
        if reminder is None:
            # Deleted by need_it / changed_my_mind: the normal disarm path
            logger.debug("Reminder %s gone, nothing to complete", reminder_id)
            return False
        if not reminder.is_pending:
            logger.debug("Reminder %s already %s", reminder_id, reminder.status.value)
            return False

        logger.info("Completing reminder %s for %s", reminder_id, reminder.product_id)
        product = await self.store.get_product(reminder.product_id)
        if product is None:
            logger.error("Product not found for reminder %s: %s", reminder_id, reminder.product_id)

        try:
            await self.store.update_product_state(reminder.product_id, ProductState.DONT_NEED_IT)
        except StoreUnavailable as e:
            logger.error("Failed to set %s to dontNeedIt: %s", reminder.product_id, e)

        try:
            await self.store.update_reminder(reminder_id, status=ReminderStatus.COMPLETED)
        except StoreUnavailable as e:
            logger.error("Failed to mark reminder %s completed: %s", reminder_id, e)

        if product is None:
            return True
        product = product.with_state(ProductState.DONT_NEED_IT)

        if self.journal is not None:
            self.journal.record(
                product, f"Resisted for {format_duration(reminder.duration)}: don't need it"
            )

        if self.notifications is not None:
            try:
                await self.notifications.notify(
                    reminder_id, build_celebration(product, reminder, self.default_icon)
                )
            except Exception as e:
                logger.error("Failed to notify for reminder %s: %s", reminder_id, e)
        return True

    async def handle_overdue(self, reminder: Reminder) -> None:
        """Overdue handler for ``TimerService.restore``."""
        await self.handle(reminder.id)
