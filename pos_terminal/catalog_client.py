from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol

import httpx
from pydantic import ValidationError as PayloadError

from .events import ChangeCallback, ChangeFeed, Subscription
from .models import Category, Product, Table
from .schemas import CategoryPayload, ProductPayload, TablePayload

logger = logging.getLogger(__name__)

CATALOG_TOPIC = "catalog"


class CatalogServiceError(Exception):
    """Raised when catalog or table listings cannot be fetched."""


class CatalogSource(Protocol):
    def list_active_categories(self) -> List[Category]: ...

    def list_active_products(self) -> List[Product]: ...

    def subscribe(self, on_change: ChangeCallback) -> Subscription: ...

    def unsubscribe(self, subscription: Subscription) -> None: ...


class TableSource(Protocol):
    def list_active_tables(self) -> List[Table]: ...


class HTTPCatalogClient:
    """Catalog and table source backed by the store's REST API.

    The API has no push channel, so ``poll()`` re-reads the catalog and
    publishes a change notification whenever the listing differs from the
    previous poll.
    """

    def __init__(
        self,
        base_url: str,
        feed: ChangeFeed,
        *,
        api_key: str | None = None,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._feed = feed
        headers = {"apikey": api_key} if api_key else {}
        self._client = client or httpx.Client(timeout=timeout, headers=headers)
        self._last_snapshot: Optional[tuple] = None

    def list_active_categories(self) -> List[Category]:
        rows = self._get("/categories", {"is_active": "true", "order": "sort_order"})
        categories = [self._parse(CategoryPayload, row).to_model() for row in rows]
        return sorted(categories, key=lambda category: category.sort_order)

    def list_active_products(self) -> List[Product]:
        rows = self._get("/products", {"is_active": "true"})
        products = [self._parse(ProductPayload, row).to_model() for row in rows]
        return [product for product in products if product.is_active]

    def list_active_tables(self) -> List[Table]:
        rows = self._get("/tables", {"is_active": "true", "order": "table_number"})
        tables = [self._parse(TablePayload, row).to_model() for row in rows]
        return sorted(tables, key=lambda table: table.table_number)

    def subscribe(self, on_change: ChangeCallback) -> Subscription:
        return self._feed.subscribe(CATALOG_TOPIC, on_change)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._feed.unsubscribe(subscription)

    def poll(self) -> bool:
        """Publish a catalog change if the listing moved since the last poll."""
        try:
            snapshot = (
                tuple(self.list_active_categories()),
                tuple(self.list_active_products()),
            )
        except CatalogServiceError as exc:
            logger.warning("Catalog poll failed: %s", exc)
            return False
        previous, self._last_snapshot = self._last_snapshot, snapshot
        if previous is None or previous == snapshot:
            return False
        self._feed.publish(CATALOG_TOPIC)
        return True

    def _get(self, path: str, params: dict) -> list:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise CatalogServiceError(f"Catalog service unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise CatalogServiceError(
                f"Catalog listing failed ({response.status_code}): {response.text}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogServiceError(f"Malformed catalog listing from {path}: {exc}") from exc
        if not isinstance(payload, list):
            raise CatalogServiceError(f"Unexpected catalog payload from {path}")
        return payload

    @staticmethod
    def _parse(schema, row):
        try:
            return schema.model_validate(row)
        except PayloadError as exc:
            raise CatalogServiceError(f"Malformed catalog entry: {exc}") from exc


class InMemoryCatalog:
    """Catalog and table source kept in process, for tests and offline mode.

    Mutations publish a change notification straight away.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        *,
        categories: Iterable[Category] = (),
        products: Iterable[Product] = (),
        tables: Iterable[Table] = (),
    ):
        self._feed = feed
        self._categories = {category.id: category for category in categories}
        self._products = {product.id: product for product in products}
        self._tables = {table.id: table for table in tables}

    def list_active_categories(self) -> List[Category]:
        active = [category for category in self._categories.values() if category.is_active]
        return sorted(active, key=lambda category: category.sort_order)

    def list_active_products(self) -> List[Product]:
        return [product for product in self._products.values() if product.is_active]

    def list_active_tables(self) -> List[Table]:
        active = [table for table in self._tables.values() if table.is_active]
        return sorted(active, key=lambda table: table.table_number)

    def subscribe(self, on_change: ChangeCallback) -> Subscription:
        return self._feed.subscribe(CATALOG_TOPIC, on_change)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._feed.unsubscribe(subscription)

    def upsert_product(self, product: Product) -> None:
        self._products[product.id] = product
        self._feed.publish(CATALOG_TOPIC)

    def delete_product(self, product_id: int) -> None:
        if self._products.pop(product_id, None) is not None:
            self._feed.publish(CATALOG_TOPIC)

    def upsert_category(self, category: Category) -> None:
        self._categories[category.id] = category
        self._feed.publish(CATALOG_TOPIC)
