"""Shared fixtures: a controllable clock and an in-memory store."""

from __future__ import annotations

import pytest

from thinktwice.scheduler.timers import TimerService
from thinktwice.store import EntityStore, MemoryBackend
from thinktwice.store.types import Product, product_key

T0 = 1_700_000_000_000


class FakeClock:
    """Callable clock returning epoch ms; advanced by hand."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def make_product(product_id: str = "B0TEST0001", **overrides) -> Product:
    data = dict(
        id=product_key("amazon", product_id),
        name="Noise Cancelling Headphones",
        price="$199.99",
        image="https://example.com/headphones.jpg",
        url=f"https://www.amazon.com/dp/{product_id}",
        timestamp=T0,
        marketplace="amazon",
    )
    data.update(overrides)
    return Product(**data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend) -> EntityStore:
    return EntityStore(backend)


@pytest.fixture
def product() -> Product:
    return make_product()


@pytest.fixture
def timers(clock: FakeClock) -> TimerService:
    t = TimerService(clock)
    yield t
    t.cancel_all()
