"""Decision gate: which view a product page shows right now.

``evaluate()`` is a pure function of a store snapshot, a product key, the
tab id and the time. Its priority order is the ``GUARDS`` table followed by
the reminder lookup:

1. snooze in the future          -> hidden
2. product state is terminal     -> hidden
3. global close                  -> hidden
4. no pending reminder           -> product
   reminder just created here    -> product (tab marker consumed)
   reminder not yet due          -> earlyReturn
   reminder due                  -> oldFlame

``PageContext`` is the live, per-tab side: it re-runs the whole evaluation
from a fresh snapshot on page load and on every relevant storage change,
never patching a previous result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from thinktwice.errors import StoreUnavailable
from thinktwice.store.entities import GATE_KEYS, StoreSnapshot
from thinktwice.store.notifier import LOCAL_AREA
from thinktwice.store.types import Product, Reminder
from thinktwice.timeutil import Clock, now_ms

if TYPE_CHECKING:
    from thinktwice.store.entities import EntityStore

logger = logging.getLogger(__name__)


class View(str, Enum):
    HIDDEN = "hidden"
    PRODUCT = "product"
    EARLY_RETURN = "earlyReturn"
    OLD_FLAME = "oldFlame"


@dataclass(frozen=True)
class GateInput:
    snapshot: StoreSnapshot
    product_key: str
    tab_id: int | None
    now: int

    @property
    def persisted(self) -> Product | None:
        return self.snapshot.products.get(self.product_key)


@dataclass(frozen=True)
class Decision:
    """Gate outcome plus the side effects the caller should apply."""

    view: View
    reason: str
    product: Product | None = None
    reminder: Reminder | None = None
    clear_expired_snooze: bool = False
    consume_marker: str | None = None

    @property
    def hidden(self) -> bool:
        return self.view is View.HIDDEN


HIDDEN = Decision(View.HIDDEN, "initial")


def _snoozed(inp: GateInput) -> bool:
    until = inp.snapshot.snooze_until
    return until is not None and until > inp.now


def _terminal(inp: GateInput) -> bool:
    product = inp.persisted
    return product is not None and product.is_terminal


def _closed(inp: GateInput) -> bool:
    return inp.snapshot.global_closed


# Ordered: an earlier guard masks every later one.
GUARDS: tuple[tuple[str, Callable[[GateInput], bool]], ...] = (
    ("snoozed", _snoozed),
    ("terminal", _terminal),
    ("closed", _closed),
)


def merge_product(persisted: Product | None, observed: Product | None) -> Product | None:
    """Fresh page attributes overlaid with the persisted state."""
    if observed is None:
        return persisted
    return observed.with_state(persisted.state if persisted else None)


def evaluate(
    snapshot: StoreSnapshot,
    product_key: str,
    tab_id: int | None,
    now: int,
    observed: Product | None = None,
) -> Decision:
    inp = GateInput(snapshot, product_key, tab_id, now)
    product = merge_product(inp.persisted, observed)
    expired = snapshot.snooze_until is not None and snapshot.snooze_until <= now

    for reason, guard in GUARDS:
        if guard(inp):
            return Decision(View.HIDDEN, reason, product, clear_expired_snooze=expired)

    reminder = snapshot.pending_reminder_for(product_key)
    if reminder is None:
        return Decision(View.PRODUCT, "no pending reminder", product, clear_expired_snooze=expired)

    session = snapshot.tab_sessions.get(tab_id) if tab_id is not None else None
    if session is not None and session.just_created_reminder_id == reminder.id:
        return Decision(
            View.PRODUCT,
            "reminder just created in this tab",
            product,
            clear_expired_snooze=expired,
            consume_marker=reminder.id,
        )

    if reminder.reminder_time > now:
        return Decision(View.EARLY_RETURN, "reminder not yet due", product, reminder, expired)
    return Decision(View.OLD_FLAME, "reminder due", product, reminder, expired)


DecisionListener = Callable[["Decision"], None]


class PageContext:
    """Live gate for one product page in one tab."""

    def __init__(
        self,
        store: EntityStore,
        product_key: str,
        tab_id: int | None = None,
        *,
        observed: Product | None = None,
        clock: Clock = now_ms,
        read_timeout: float = 2.0,
    ) -> None:
        self.store = store
        self.product_key = product_key
        self.tab_id = tab_id
        self.observed = observed
        self.read_timeout = read_timeout
        self._clock = clock
        self._decision = HIDDEN
        self._listeners: list[DecisionListener] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def decision(self) -> Decision:
        return self._decision

    def on_decision(self, listener: DecisionListener) -> Callable[[], None]:
        """Call ``listener`` whenever the shown view or reminder changes."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ── Lifecycle ────────────────────────────────────────────

    async def open(self) -> Decision:
        """Subscribe to storage changes and evaluate for the page load."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.notifier.subscribe(self._on_change)
        return await self.refresh()

    async def navigate(self, product_key: str, observed: Product | None = None) -> Decision:
        self.product_key = product_key
        self.observed = observed
        return await self.refresh()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_change(self, changed_keys: frozenset[str], area: str) -> None:
        if area != LOCAL_AREA or not changed_keys & GATE_KEYS:
            return
        logger.debug("Tab %s: %s changed, re-evaluating", self.tab_id, sorted(changed_keys))
        await self.refresh()

    # ── Evaluation ───────────────────────────────────────────

    async def refresh(self) -> Decision:
        """Re-run the gate from a fresh snapshot.

        A read that fails or takes longer than ``read_timeout`` keeps the
        previous decision (hidden before the first success).
        """
        try:
            snapshot = await asyncio.wait_for(self.store.snapshot(), timeout=self.read_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Tab %s: store read timed out, keeping %s", self.tab_id, self._decision.view.value
            )
            return self._decision
        except StoreUnavailable as e:
            logger.error(
                "Tab %s: store unavailable, keeping %s: %s",
                self.tab_id,
                self._decision.view.value,
                e,
            )
            return self._decision

        now = self._clock()
        decision = evaluate(snapshot, self.product_key, self.tab_id, now, self.observed)
        self._set(decision)
        await self._apply_side_effects(decision, now)
        return decision

    async def _apply_side_effects(self, decision: Decision, now: int) -> None:
        try:
            if decision.consume_marker and self.tab_id is not None:
                await self.store.consume_just_created(self.tab_id, decision.consume_marker)
            if decision.clear_expired_snooze:
                await self.store.clear_expired_snooze(now)
        except StoreUnavailable as e:
            logger.error("Tab %s: gate side effect failed: %s", self.tab_id, e)

    def _set(self, decision: Decision) -> None:
        previous = self._decision
        self._decision = decision
        changed = previous.view is not decision.view or (
            (previous.reminder.id if previous.reminder else None)
            != (decision.reminder.id if decision.reminder else None)
        )
        if not changed:
            return
        logger.info(
            "Tab %s %s: %s -> %s (%s)",
            self.tab_id,
            self.product_key,
            previous.view.value,
            decision.view.value,
            decision.reason,
        )
        for listener in list(self._listeners):
            try:
                listener(decision)
            except Exception as e:
                logger.error("Decision listener failed: %s", e)
