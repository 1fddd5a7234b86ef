from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

MINOR_UNIT = Decimal("0.01")
ZERO = Decimal("0")

MoneyInput = Union[Decimal, int, float, str]


def to_money(value: MoneyInput | None, default: Decimal = ZERO) -> Decimal:
    """Convert user or wire input into a Decimal amount.

    Blank strings and ``None`` yield ``default``. Floats go through ``str`` so
    that ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip()
        if not text:
            return default
        try:
            amount = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    return f"{round_money(value):.2f}"


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount: Decimal
    taxable_base: Decimal
    tax: Decimal
    total: Decimal

    def change(self, tendered: Optional[Decimal] = None) -> Decimal:
        """Change owed for ``tendered``; no tender means exact payment."""
        if tendered is None:
            return ZERO
        return tendered - self.total


def price(
    subtotal: Decimal,
    discount: Decimal = ZERO,
    tax_rate: Decimal = ZERO,
    *,
    clamp_discount: bool = True,
) -> PriceBreakdown:
    """Compute discount, tax and total for a cart subtotal.

    With ``clamp_discount`` the discount is held within ``[0, subtotal]``.
    Without it the discount is applied as given and the taxable base can go
    negative. Tax is rounded half-up to the minor unit; every other figure is
    an exact sum of two-digit amounts.
    """
    applied = discount
    if clamp_discount:
        applied = min(max(discount, ZERO), max(subtotal, ZERO))
    taxable_base = subtotal - applied
    tax = round_money(taxable_base * tax_rate)
    return PriceBreakdown(
        subtotal=subtotal,
        discount=applied,
        taxable_base=taxable_base,
        tax=tax,
        total=taxable_base + tax,
    )
