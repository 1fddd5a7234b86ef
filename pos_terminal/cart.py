from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterator, Optional

from .models import Product
from .pricing import ZERO


@dataclass(frozen=True)
class CartLine:
    product: Product
    qty: int
    notes: Optional[str] = None

    @property
    def product_id(self) -> int:
        return self.product.id

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.qty


class CartLedger:
    """Session cart: one line per product, quantities always positive.

    Lines keep the product snapshot taken when the product was first added,
    so later catalog price changes do not move the subtotal. Invalid input is
    ignored instead of raising; this is interactive state, not a store.
    """

    def __init__(self) -> None:
        self._lines: list[CartLine] = []

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(tuple(self._lines))

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines)

    def add(self, product: Product, quantity: int = 1) -> None:
        if not _is_positive_int(quantity):
            return
        index = self._index_of(product.id)
        if index is None:
            self._lines.append(CartLine(product=product, qty=quantity))
            return
        line = self._lines[index]
        self._lines[index] = CartLine(product=line.product, qty=line.qty + quantity, notes=line.notes)

    def remove(self, product_id: int) -> None:
        self._lines = [line for line in self._lines if line.product_id != product_id]

    def set_quantity(self, product_id: int, quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return
        if quantity <= 0:
            self.remove(product_id)
            return
        index = self._index_of(product_id)
        if index is None:
            return
        line = self._lines[index]
        self._lines[index] = CartLine(product=line.product, qty=quantity, notes=line.notes)

    def set_notes(self, product_id: int, notes: Optional[str]) -> None:
        index = self._index_of(product_id)
        if index is None:
            return
        line = self._lines[index]
        self._lines[index] = CartLine(product=line.product, qty=line.qty, notes=notes or None)

    def clear(self) -> None:
        self._lines = []

    def quantity_of(self, product_id: int) -> int:
        index = self._index_of(product_id)
        return 0 if index is None else self._lines[index].qty

    def total_item_count(self) -> int:
        return sum(line.qty for line in self._lines)

    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self._lines), ZERO)

    def _index_of(self, product_id: int) -> Optional[int]:
        for index, line in enumerate(self._lines):
            if line.product_id == product_id:
                return index
        return None


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0
