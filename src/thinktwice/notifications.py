"""User-visible notifications and their click routing."""

from __future__ import annotations

import asyncio
import inspect
import logging
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from thinktwice.store.entities import EntityStore

logger = logging.getLogger(__name__)

VIEW_PRODUCT_BUTTON = 0


@dataclass
class Notification:
    title: str
    body: str
    icon: str
    context: str = ""
    buttons: list[str] = field(default_factory=list)


@runtime_checkable
class NotificationSink(Protocol):
    """Protocol for whatever actually displays notifications."""

    async def create(self, notification_id: str, notification: Notification) -> None: ...

    async def clear(self, notification_id: str) -> None: ...


class LogNotificationSink:
    """Writes notifications to the log and keeps the ones still shown."""

    def __init__(self) -> None:
        self.shown: dict[str, Notification] = {}

    async def create(self, notification_id: str, notification: Notification) -> None:
        self.shown[notification_id] = notification
        logger.info(
            "[notification %s] %s: %s", notification_id, notification.title, notification.body
        )

    async def clear(self, notification_id: str) -> None:
        self.shown.pop(notification_id, None)


class CommandNotificationSink:
    """Runs a desktop notifier command per notification.

    ``command`` is a template such as ``notify-send -i {icon} {title} {body}``;
    each token is formatted after shell-style splitting, so values with spaces
    stay one argument.
    """

    def __init__(self, command: str, timeout: float = 10.0) -> None:
        self.template = shlex.split(command)
        self.timeout = timeout

    def build_args(self, notification: Notification) -> list[str]:
        values = {
            "title": notification.title,
            "body": notification.body,
            "icon": notification.icon,
            "context": notification.context,
        }
        return [token.format(**values) for token in self.template]

    async def create(self, notification_id: str, notification: Notification) -> None:
        args = self.build_args(notification)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Notifier command timed out for %s", notification_id)
            return
        except OSError as e:
            logger.error("Notifier command failed for %s: %s", notification_id, e)
            return
        if proc.returncode != 0:
            logger.error(
                "Notifier exited %d for %s: %s",
                proc.returncode,
                notification_id,
                stderr.decode(errors="replace").strip(),
            )

    async def clear(self, notification_id: str) -> None:
        # Desktop notifiers expire on their own
        logger.debug("Clear requested for %s", notification_id)


OpenSummary = Callable[[], "Awaitable[None] | None"]
OpenUrl = Callable[[str], "Awaitable[None] | None"]


async def _maybe_await(result) -> None:
    if inspect.isawaitable(result):
        await result


class NotificationCenter:
    """Creates notifications and routes clicks back into the app."""

    def __init__(
        self,
        sink: NotificationSink,
        store: EntityStore,
        open_summary: OpenSummary,
        open_url: OpenUrl,
    ) -> None:
        self.sink = sink
        self.store = store
        self._open_summary = open_summary
        self._open_url = open_url

    async def notify(self, notification_id: str, notification: Notification) -> None:
        await self.sink.create(notification_id, notification)

    async def handle_click(self, notification_id: str) -> None:
        """Body click: open the summary view and dismiss the notification."""
        logger.info("Notification clicked: %s", notification_id)
        await _maybe_await(self._open_summary())
        await self.sink.clear(notification_id)

    async def handle_button(self, notification_id: str, button_index: int) -> None:
        """Button click. Notification ids are reminder ids."""
        logger.info("Notification button %d clicked: %s", button_index, notification_id)
        if button_index == VIEW_PRODUCT_BUTTON:
            reminder = await self.store.get_reminder(notification_id)
            if reminder is None:
                logger.warning("Reminder not found for notification %s", notification_id)
            else:
                product = await self.store.get_product(reminder.product_id)
                if product is not None and product.url:
                    await _maybe_await(self._open_url(product.url))
        await self.sink.clear(notification_id)
