"""Persisted entity types.

On disk every entity is a plain JSON object with camelCase keys, matching
the layout the browser extension writes. ``to_dict`` / ``from_dict`` are the
only place that layout is spelled out.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from thinktwice.timeutil import DAY, HOUR, MINUTE


class ProductState(str, Enum):
    SLEEPING_ON_IT = "sleepingOnIt"
    I_NEED_THIS = "iNeedThis"
    DONT_NEED_IT = "dontNeedIt"


# Once set, the decision gate never prompts for the product again.
TERMINAL_STATES = frozenset({ProductState.I_NEED_THIS, ProductState.DONT_NEED_IT})


class ReminderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DISMISSED = "dismissed"


def product_key(marketplace: str, marketplace_product_id: str) -> str:
    """Composite product identity: ``{marketplace}-{marketplaceProductId}``."""
    return f"{marketplace}-{marketplace_product_id}"


def _parse_state(value: Any) -> ProductState | None:
    if not value:
        return None
    try:
        return ProductState(value)
    except ValueError:
        return None


@dataclass
class Product:
    """A watched item, keyed by its composite product key."""

    id: str
    name: str
    url: str
    marketplace: str
    timestamp: int
    price: str | None = None
    image: str | None = None
    state: ProductState | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def with_state(self, state: ProductState | None) -> Product:
        return replace(self, state=state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "image": self.image,
            "url": self.url,
            "timestamp": self.timestamp,
            "marketplace": self.marketplace,
            "state": self.state.value if self.state else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Product:
        return cls(
            id=data["id"],
            name=data.get("name") or "Unknown Product",
            url=data.get("url", ""),
            marketplace=data.get("marketplace", ""),
            timestamp=int(data.get("timestamp") or 0),
            price=data.get("price"),
            image=data.get("image"),
            state=_parse_state(data.get("state")),
        )


@dataclass
class Reminder:
    """A deferred decision. ``reminder_time`` and ``duration`` are in ms."""

    id: str
    product_id: str
    reminder_time: int
    duration: int
    status: ReminderStatus = ReminderStatus.PENDING

    @property
    def is_pending(self) -> bool:
        return self.status is ReminderStatus.PENDING

    def is_due(self, now: int) -> bool:
        return self.is_pending and self.reminder_time <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "reminderTime": self.reminder_time,
            "duration": self.duration,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Reminder:
        return cls(
            id=data["id"],
            product_id=data["productId"],
            reminder_time=int(data["reminderTime"]),
            duration=int(data.get("duration") or 0),
            status=ReminderStatus(data.get("status", "pending")),
        )


@dataclass
class TabSessionState:
    """Ephemeral per-tab state, keyed by a transient tab id."""

    tab_id: int
    just_created_reminder_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"tabId": self.tab_id, "justCreatedReminderId": self.just_created_reminder_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TabSessionState:
        return cls(
            tab_id=int(data["tabId"]),
            just_created_reminder_id=data.get("justCreatedReminderId"),
        )


@dataclass
class Settings:
    """User-tunable reminder durations (ms)."""

    reminder_durations: list[int] = field(
        default_factory=lambda: [
            1 * MINUTE,
            1 * HOUR,
            6 * HOUR,
            24 * HOUR,
            3 * DAY,
            7 * DAY,
        ]
    )
    default_duration: int = 24 * HOUR

    def to_dict(self) -> dict[str, Any]:
        return {
            "reminderDurations": list(self.reminder_durations),
            "defaultDuration": self.default_duration,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Settings:
        settings = cls()
        if not data:
            return settings
        if "reminderDurations" in data:
            settings.reminder_durations = [int(d) for d in data["reminderDurations"]]
        if "defaultDuration" in data:
            settings.default_duration = int(data["defaultDuration"])
        return settings
