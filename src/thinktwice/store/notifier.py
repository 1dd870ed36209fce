"""Change notifier: pub/sub over storage change events.

Every successful backend write publishes the set of keys it touched. Handlers
receive ``(changed_keys, area)`` and must treat the event as a hint only:
they re-read the store instead of trusting the payload, so stale or
duplicate events are harmless.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

LOCAL_AREA = "local"

ChangeHandler = Callable[[frozenset[str], str], "Awaitable[None] | None"]


class ChangeNotifier:
    """In-process fan-out of storage change events."""

    def __init__(self) -> None:
        self._handlers: list[ChangeHandler] = []

    def subscribe(self, handler: ChangeHandler) -> Callable[[], None]:
        """Register a handler. Returns an idempotent unsubscribe callable."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, changed_keys: Iterable[str], area: str = LOCAL_AREA) -> None:
        keys = frozenset(changed_keys)
        if not keys:
            return
        # Copy: handlers may unsubscribe while being notified
        for handler in list(self._handlers):
            try:
                result = handler(keys, area)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Change handler %r failed for %s: %s", handler, sorted(keys), e)
