from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .catalog_client import CatalogServiceError, CatalogSource
from .events import Subscription
from .models import Category, Product

logger = logging.getLogger(__name__)


def filter_products(
    products: Iterable[Product],
    category_id: Optional[int] = None,
    search: str = "",
) -> List[Product]:
    """Products in ``category_id`` whose Thai or English name contains ``search``."""
    needle = (search or "").strip().casefold()
    return [
        product
        for product in products
        if (category_id is None or product.category_id == category_id)
        and (not needle or any(needle in name.casefold() for name in product.name.variants()))
    ]


class CatalogView:
    """Latest catalog snapshot plus the cashier's category and search selection.

    Once attached, every catalog change notification reloads the snapshot;
    ``products()`` always filters whatever snapshot is current.
    """

    def __init__(self, source: CatalogSource):
        self._source = source
        self._products: List[Product] = []
        self._categories: List[Category] = []
        self._subscription: Optional[Subscription] = None
        self.category_id: Optional[int] = None
        self.search: str = ""

    def attach(self) -> None:
        if self._subscription is None:
            self._subscription = self._source.subscribe(self.load)
        self.load()

    def detach(self) -> None:
        if self._subscription is not None:
            self._source.unsubscribe(self._subscription)
            self._subscription = None

    def load(self) -> None:
        self._categories = self._fetch(self._source.list_active_categories, self._categories, "categories")
        self._products = self._fetch(self._source.list_active_products, self._products, "products")

    def select(self, category_id: Optional[int] = None, search: Optional[str] = None) -> None:
        self.category_id = category_id
        if search is not None:
            self.search = search

    def categories(self) -> List[Category]:
        return list(self._categories)

    def product(self, product_id: int) -> Optional[Product]:
        for product in self._products:
            if product.id == product_id:
                return product
        return None

    def products(self) -> List[Product]:
        return filter_products(self._products, self.category_id, self.search)

    @staticmethod
    def _fetch(loader, fallback: list, what: str) -> list:
        try:
            return list(loader())
        except CatalogServiceError as exc:
            logger.warning("Could not load %s, keeping %d cached: %s", what, len(fallback), exc)
            return fallback
