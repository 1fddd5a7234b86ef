from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from .cart import CartLedger
from .catalog_client import CatalogServiceError, CatalogSource, HTTPCatalogClient, InMemoryCatalog, TableSource
from .catalog_view import CatalogView
from .checkout import CheckoutCommand, CheckoutOrchestrator, CheckoutReceipt
from .config import Settings
from .events import ChangeFeed
from .models import Category, MultiLang, PaymentMethod, Product, Table
from .order_client import HTTPOrderClient, InMemoryOrderSink, OrderSink
from .order_history import OrderHistory
from .pricing import ZERO, PriceBreakdown

logger = logging.getLogger(__name__)


class ProductUnavailableError(Exception):
    """Raised when a product id is not in the current active catalog."""


class UnknownTableError(Exception):
    """Raised when selecting a table that is not active."""


class PosSession:
    """State of one terminal session: cart, selected table and live views.

    Nothing here is global; the web app and tests each build their own.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        tables: TableSource,
        orders: OrderSink,
        feed: ChangeFeed,
        *,
        tax_rate: Decimal,
        clamp_discount: bool = True,
    ):
        self.feed = feed
        self.ledger = CartLedger()
        self.catalog = CatalogView(catalog)
        self.history = OrderHistory(orders)
        self.checkout_flow = CheckoutOrchestrator(
            self.ledger, orders, tax_rate=tax_rate, clamp_discount=clamp_discount
        )
        self.table_id: Optional[int] = None
        self._tables = tables
        self._pollables = [source for source in (catalog, tables, orders) if hasattr(source, "poll")]

    def start(self) -> None:
        self.catalog.attach()
        self.history.attach()

    def close(self) -> None:
        self.catalog.detach()
        self.history.detach()

    def pump(self) -> int:
        """Poll sources without a push channel, then deliver queued changes."""
        seen = set()
        for source in self._pollables:
            if id(source) in seen:
                continue
            seen.add(id(source))
            source.poll()
        return self.feed.drain()

    def list_tables(self) -> List[Table]:
        try:
            return list(self._tables.list_active_tables())
        except CatalogServiceError as exc:
            logger.warning("Could not load tables: %s", exc)
            return []

    def select_table(self, table_id: Optional[int]) -> None:
        if table_id is not None and all(table.id != table_id for table in self.list_tables()):
            raise UnknownTableError(f"Table {table_id} is not available.")
        self.table_id = table_id

    def add_product(self, product_id: int, quantity: int = 1) -> Product:
        product = self.catalog.product(product_id)
        if product is None:
            raise ProductUnavailableError(f"Product {product_id} is not available.")
        self.ledger.add(product, quantity)
        return product

    def quote(self, discount: Decimal = ZERO) -> PriceBreakdown:
        return self.checkout_flow.quote(discount)

    def checkout(
        self,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        tendered: Optional[Decimal] = None,
        discount: Decimal = ZERO,
    ) -> CheckoutReceipt:
        return self.checkout_flow.checkout(
            CheckoutCommand(
                payment_method=payment_method,
                tendered=tendered,
                discount=discount,
                table_id=self.table_id,
            )
        )


def build_session(settings: Settings) -> PosSession:
    feed = ChangeFeed()
    if settings.backend == "http":
        catalog = HTTPCatalogClient(
            settings.api_url, feed, api_key=settings.api_key, timeout=settings.http_timeout
        )
        orders: OrderSink = HTTPOrderClient(
            settings.api_url, feed, api_key=settings.api_key, timeout=settings.http_timeout
        )
        return PosSession(
            catalog,
            catalog,
            orders,
            feed,
            tax_rate=settings.tax_rate,
            clamp_discount=settings.clamp_discount,
        )

    demo = seed_demo_catalog(feed)
    return PosSession(
        demo,
        demo,
        InMemoryOrderSink(feed),
        feed,
        tax_rate=settings.tax_rate,
        clamp_discount=settings.clamp_discount,
    )


def seed_demo_catalog(feed: ChangeFeed) -> InMemoryCatalog:
    categories = [
        Category(id=1, name=MultiLang("อาหารจานเดียว", "Single Dishes"), sort_order=1),
        Category(id=2, name=MultiLang("เครื่องดื่ม", "Drinks"), sort_order=2),
        Category(id=3, name=MultiLang("ของหวาน", "Desserts"), sort_order=3),
    ]
    products = [
        Product(id=1, name=MultiLang("ผัดไทย", "Pad Thai"), price=Decimal("60.00"), category_id=1),
        Product(id=2, name=MultiLang("ข้าวผัดกะเพรา", "Basil Fried Rice"), price=Decimal("55.00"), category_id=1),
        Product(id=3, name=MultiLang("ต้มยำกุ้ง", "Tom Yum Goong"), price=Decimal("120.00"), category_id=1),
        Product(id=4, name=MultiLang("ชาไทย", "Thai Iced Tea"), price=Decimal("35.00"), category_id=2),
        Product(id=5, name=MultiLang("น้ำเปล่า", "Water"), price=Decimal("15.00"), category_id=2),
        Product(id=6, name=MultiLang("ข้าวเหนียวมะม่วง", "Mango Sticky Rice"), price=Decimal("80.00"), category_id=3),
    ]
    tables = [
        Table(id=1, table_number="T01", capacity=2),
        Table(id=2, table_number="T02", capacity=4),
        Table(id=3, table_number="T03", capacity=6),
    ]
    return InMemoryCatalog(feed, categories=categories, products=products, tables=tables)
