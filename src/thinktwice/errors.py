"""Error taxonomy shared by every ThinkTwice component."""

from __future__ import annotations


class ThinkTwiceError(Exception):
    """Base class for all ThinkTwice errors."""


class StoreUnavailable(ThinkTwiceError):
    """The storage substrate cannot be reached (I/O error, corrupt document)."""


class SchedulingUnavailable(ThinkTwiceError):
    """No scheduling primitive is available to arm a wake-up."""


class UnsupportedMarketplace(ThinkTwiceError):
    """Extraction was requested for a marketplace we do not know."""

    def __init__(self, marketplace: str) -> None:
        super().__init__(f"Unsupported marketplace: {marketplace}")
        self.marketplace = marketplace


class NotFound(ThinkTwiceError):
    """A lookup by id found nothing."""
