"""Product extraction contract.

Scraping marketplace pages happens outside this package. Page code hands us
what it observed as a ``PageInfo``; a per-marketplace builder turns it into a
``Product`` keyed by the composite product key.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from thinktwice.errors import UnsupportedMarketplace
from thinktwice.store.types import Product, product_key
from thinktwice.timeutil import Clock, now_ms

_AMAZON_PATTERNS = (
    re.compile(r"/dp/([A-Z0-9]+)"),
    re.compile(r"/gp/product/([A-Z0-9]+)"),
)

_URL_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    "amazon": _AMAZON_PATTERNS,
}


@dataclass
class PageInfo:
    """Attributes observed on a product page."""

    url: str
    title: str | None = None
    price: str | None = None
    image: str | None = None


@runtime_checkable
class ProductExtractor(Protocol):
    def extract(self, marketplace: str, product_id: str) -> Product: ...


def product_id_from_url(marketplace: str, url: str) -> str | None:
    """Marketplace product id embedded in a page URL, if any."""
    patterns = _URL_PATTERNS.get(marketplace)
    if patterns is None:
        raise UnsupportedMarketplace(marketplace)
    for pattern in patterns:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


Builder = Callable[[str, PageInfo, int], Product]


def build_amazon_product(product_id: str, page: PageInfo, timestamp: int) -> Product:
    return Product(
        id=product_key("amazon", product_id),
        name=(page.title or "").strip() or "Unknown Product",
        price=(page.price or "").strip() or None,
        image=page.image or None,
        url=page.url,
        timestamp=timestamp,
        marketplace="amazon",
    )


class PageExtractor:
    """``ProductExtractor`` over an already-observed page."""

    def __init__(self, page: PageInfo, clock: Clock = now_ms) -> None:
        self.page = page
        self._clock = clock
        self._builders: dict[str, Builder] = {"amazon": build_amazon_product}

    def register(self, marketplace: str, builder: Builder) -> None:
        self._builders[marketplace] = builder

    def extract(self, marketplace: str, product_id: str) -> Product:
        builder = self._builders.get(marketplace)
        if builder is None:
            raise UnsupportedMarketplace(marketplace)
        return builder(product_id, self.page, self._clock())
