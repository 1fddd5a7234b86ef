from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class MultiLang:
    th: str
    en: str = ""

    def get(self, language: str) -> str:
        """Text in ``language``, falling back to the other variant when empty."""
        if language == "en":
            return self.en or self.th
        return self.th or self.en

    def variants(self) -> tuple[str, str]:
        return (self.th, self.en)


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    QR = "qr"
    TRANSFER = "transfer"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    def can_transition_to(self, target: "OrderStatus") -> bool:
        if self.is_terminal:
            return False
        if target is OrderStatus.CANCELLED:
            return self in _CANCELLABLE
        return _FORWARD.get(self) is target


_FORWARD = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.COMPLETED,
}

_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


@dataclass(frozen=True)
class Category:
    id: int
    name: MultiLang
    sort_order: int = 0
    is_active: bool = True
    description: Optional[MultiLang] = None


@dataclass(frozen=True)
class Product:
    """Catalog product as seen by the terminal. Owned by the catalog source."""

    id: int
    name: MultiLang
    price: Decimal
    category_id: Optional[int] = None
    is_active: bool = True
    sku: Optional[str] = None
    description: Optional[MultiLang] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class Table:
    id: int
    table_number: str
    capacity: int = 0
    is_active: bool = True
    name: Optional[MultiLang] = None


@dataclass(frozen=True)
class OrderItem:
    id: int
    order_id: int
    product_id: int
    name: MultiLang
    qty: int
    price: Decimal
    total: Decimal
    notes: Optional[str] = None


@dataclass(frozen=True)
class Order:
    id: int
    order_number: str
    status: OrderStatus
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    created_at: str
    updated_at: str
    table_id: Optional[int] = None
    items: tuple[OrderItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CheckoutLine:
    product_id: int
    name: MultiLang
    qty: int
    price: Decimal
    notes: Optional[str] = None


@dataclass(frozen=True)
class CheckoutRequest:
    """Order snapshot handed to the order sink at submit time."""

    items: tuple[CheckoutLine, ...]
    payment_method: PaymentMethod
    payment_amount: Decimal
    discount: Decimal
    tax_rate: Decimal
    table_id: Optional[int] = None


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    order_number: str
    order: Optional[Order] = None
