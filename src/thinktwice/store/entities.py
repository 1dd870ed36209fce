"""Entity store: typed domain access to the persisted collections.

Each logical collection is one backend entry, so every mutation is a
read-modify-write of a whole blob with last-writer-wins semantics. Nothing
here locks: two contexts appending a reminder at the same moment can lose
one append. Callers are expected to re-derive state from a fresh read rather
than cache anything across calls.

Read policy: collection getters log ``StoreUnavailable`` and fall back to
empty/default values. ``snapshot()`` and every write propagate it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from thinktwice.errors import StoreUnavailable
from thinktwice.store.backend import StorageBackend
from thinktwice.store.types import (
    Product,
    ProductState,
    Reminder,
    ReminderStatus,
    Settings,
    TabSessionState,
)

logger = logging.getLogger(__name__)


class Keys:
    """Storage keys of the logical collections."""

    PRODUCTS = "thinktwice_products"
    REMINDERS = "thinktwice_reminders"
    SETTINGS = "thinktwice_settings"
    TAB_SESSION_STATE = "thinktwice_tab_session_state"
    SNOOZE = "thinktwice_snooze"
    GLOBAL_CLOSED = "thinktwice_global_plugin_closed"


# Collections whose change can alter a decision-gate outcome
GATE_KEYS = frozenset({Keys.PRODUCTS, Keys.REMINDERS, Keys.SNOOZE, Keys.GLOBAL_CLOSED})


@dataclass(frozen=True)
class StoreSnapshot:
    """Everything the decision gate reads, taken in one pass."""

    products: dict[str, Product] = field(default_factory=dict)
    reminders: tuple[Reminder, ...] = ()
    snooze_until: int | None = None
    global_closed: bool = False
    tab_sessions: dict[int, TabSessionState] = field(default_factory=dict)

    def pending_reminder_for(self, product_key: str) -> Reminder | None:
        for reminder in self.reminders:
            if reminder.product_id == product_key and reminder.is_pending:
                return reminder
        return None


def _parse_products(raw: Any) -> dict[str, Product]:
    products: dict[str, Product] = {}
    for key, data in (raw or {}).items():
        try:
            products[key] = Product.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed product %s: %s", key, e)
    return products


def _parse_reminders(raw: Any) -> list[Reminder]:
    reminders: list[Reminder] = []
    for data in raw or []:
        try:
            reminders.append(Reminder.from_dict(data))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed reminder %r: %s", data, e)
    return reminders


def _parse_tab_sessions(raw: Any) -> dict[int, TabSessionState]:
    sessions: dict[int, TabSessionState] = {}
    for data in (raw or {}).values():
        try:
            state = TabSessionState.from_dict(data)
        except (KeyError, TypeError, ValueError):
            continue
        sessions[state.tab_id] = state
    return sessions


class EntityStore:
    """Read/write access to the persisted ThinkTwice entities."""

    def __init__(self, backend: StorageBackend) -> None:
        self.backend = backend

    @property
    def notifier(self):
        return self.backend.notifier

    async def _read(self, key: str, default: Any) -> Any:
        try:
            value = await self.backend.get(key)
        except StoreUnavailable as e:
            logger.error("Store read of %s failed, using default: %s", key, e)
            return default
        return default if value is None else value

    # ── Products ─────────────────────────────────────────────

    async def _raw_products(self) -> dict[str, Any]:
        raw = await self.backend.get(Keys.PRODUCTS)
        return dict(raw or {})

    async def get_products(self) -> dict[str, Product]:
        return _parse_products(await self._read(Keys.PRODUCTS, {}))

    async def get_product(self, key: str) -> Product | None:
        return (await self.get_products()).get(key)

    async def save_product(self, product: Product) -> None:
        """Insert or replace a product under its key."""
        products = await self._raw_products()
        products[product.id] = product.to_dict()
        await self.backend.set(Keys.PRODUCTS, products)
        logger.debug("Saved product %s (state=%s)", product.id, product.state)

    async def update_product_state(self, key: str, state: ProductState | None) -> bool:
        """Change one product's state in place. False if the product is unknown."""
        products = await self._raw_products()
        if key not in products:
            logger.warning("Cannot set state %s: product %s not found", state, key)
            return False
        products[key] = {**products[key], "state": state.value if state else None}
        await self.backend.set(Keys.PRODUCTS, products)
        logger.debug("Product %s state -> %s", key, state)
        return True

    # ── Reminders ────────────────────────────────────────────

    async def _raw_reminders(self) -> list[dict[str, Any]]:
        raw = await self.backend.get(Keys.REMINDERS)
        return list(raw or [])

    async def get_reminders(self) -> list[Reminder]:
        return _parse_reminders(await self._read(Keys.REMINDERS, []))

    async def get_reminder(self, reminder_id: str) -> Reminder | None:
        for reminder in await self.get_reminders():
            if reminder.id == reminder_id:
                return reminder
        return None

    async def pending_reminders_for(self, product_key: str) -> list[Reminder]:
        return [
            r
            for r in await self.get_reminders()
            if r.product_id == product_key and r.is_pending
        ]

    async def save_reminder(self, reminder: Reminder) -> None:
        reminders = await self._raw_reminders()
        reminders.append(reminder.to_dict())
        await self.backend.set(Keys.REMINDERS, reminders)
        logger.debug("Saved reminder %s for %s", reminder.id, reminder.product_id)

    async def update_reminder(self, reminder_id: str, **changes: Any) -> Reminder | None:
        """Apply field changes to one reminder. Returns the stored result.

        Status only leaves ``pending``: a request to move a completed or
        dismissed reminder to another status is ignored and logged. Writing
        the status it already has is accepted.
        """
        reminders = await self._raw_reminders()
        for index, data in enumerate(reminders):
            if data.get("id") != reminder_id:
                continue
            current = Reminder.from_dict(data)
            status = changes.get("status")
            if status is not None:
                status = ReminderStatus(status)
                if not current.is_pending and status is not current.status:
                    logger.warning(
                        "Refusing reminder %s status %s -> %s",
                        reminder_id,
                        current.status.value,
                        status.value,
                    )
                    return current
                changes["status"] = status
            updated = Reminder(**{**current.__dict__, **changes})
            reminders[index] = updated.to_dict()
            await self.backend.set(Keys.REMINDERS, reminders)
            return updated
        logger.debug("Reminder %s not found for update", reminder_id)
        return None

    async def delete_reminder(self, reminder_id: str) -> bool:
        reminders = await self._raw_reminders()
        kept = [r for r in reminders if r.get("id") != reminder_id]
        if len(kept) == len(reminders):
            logger.debug("Reminder %s already gone", reminder_id)
            return False
        await self.backend.set(Keys.REMINDERS, kept)
        return True

    # ── Global pause state ───────────────────────────────────

    async def get_snooze_until(self, now: int) -> int | None:
        """Active snooze deadline; an expired one reads as None and is cleared."""
        value = await self._read(Keys.SNOOZE, None)
        if not value:
            return None
        if int(value) <= now:
            await self.clear_expired_snooze(now)
            return None
        return int(value)

    async def set_snooze_until(self, timestamp: int) -> None:
        await self.backend.set(Keys.SNOOZE, int(timestamp))
        logger.info("Global snooze set until %d", timestamp)

    async def clear_snooze(self) -> None:
        await self.backend.remove(Keys.SNOOZE)
        logger.info("Global snooze cleared")

    async def clear_expired_snooze(self, now: int) -> None:
        """Lazy clear; leaves a snooze that was extended in the meantime."""
        try:
            value = await self.backend.get(Keys.SNOOZE)
            if value and int(value) <= now:
                await self.backend.remove(Keys.SNOOZE)
                logger.debug("Cleared expired snooze (%s)", value)
        except StoreUnavailable as e:
            logger.error("Failed to clear expired snooze: %s", e)

    async def is_globally_closed(self) -> bool:
        return bool(await self._read(Keys.GLOBAL_CLOSED, False))

    async def set_globally_closed(self, closed: bool) -> None:
        await self.backend.set(Keys.GLOBAL_CLOSED, bool(closed))
        logger.info("Global close -> %s", closed)

    # ── Tab session state ────────────────────────────────────

    async def _raw_tab_sessions(self) -> dict[str, Any]:
        raw = await self.backend.get(Keys.TAB_SESSION_STATE)
        return dict(raw or {})

    async def get_tab_session(self, tab_id: int) -> TabSessionState | None:
        sessions = _parse_tab_sessions(await self._read(Keys.TAB_SESSION_STATE, {}))
        return sessions.get(tab_id)

    async def save_tab_session(self, state: TabSessionState) -> None:
        sessions = await self._raw_tab_sessions()
        # JSON object keys are strings
        sessions[str(state.tab_id)] = state.to_dict()
        await self.backend.set(Keys.TAB_SESSION_STATE, sessions)

    async def mark_just_created(self, tab_id: int, reminder_id: str) -> None:
        await self.save_tab_session(TabSessionState(tab_id, just_created_reminder_id=reminder_id))

    async def consume_just_created(self, tab_id: int, reminder_id: str) -> bool:
        """Clear the tab's marker if it still names ``reminder_id``."""
        sessions = await self._raw_tab_sessions()
        data = sessions.get(str(tab_id))
        if not data or data.get("justCreatedReminderId") != reminder_id:
            return False
        sessions[str(tab_id)] = {**data, "justCreatedReminderId": None}
        await self.backend.set(Keys.TAB_SESSION_STATE, sessions)
        return True

    # ── Settings ─────────────────────────────────────────────

    async def get_settings(self) -> Settings:
        return Settings.from_dict(await self._read(Keys.SETTINGS, None))

    async def update_settings(self, **changes: Any) -> Settings:
        settings = await self.get_settings()
        for name, value in changes.items():
            if not hasattr(settings, name):
                raise ValueError(f"Unknown setting: {name}")
            setattr(settings, name, value)
        await self.backend.set(Keys.SETTINGS, settings.to_dict())
        return settings

    # ── Snapshot ─────────────────────────────────────────────

    async def snapshot(self) -> StoreSnapshot:
        """Read every gate-relevant collection. Propagates StoreUnavailable."""
        products = await self.backend.get(Keys.PRODUCTS)
        reminders = await self.backend.get(Keys.REMINDERS)
        snooze = await self.backend.get(Keys.SNOOZE)
        closed = await self.backend.get(Keys.GLOBAL_CLOSED)
        sessions = await self.backend.get(Keys.TAB_SESSION_STATE)
        return StoreSnapshot(
            products=_parse_products(products),
            reminders=tuple(_parse_reminders(reminders)),
            snooze_until=int(snooze) if snooze else None,
            global_closed=bool(closed),
            tab_sessions=_parse_tab_sessions(sessions),
        )
