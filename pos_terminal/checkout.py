from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .cart import CartLedger, CartLine
from .models import CheckoutLine, CheckoutRequest, Order, PaymentMethod
from .order_client import OrderOutcomeUnknown, OrderSink, OrderSinkError
from .pricing import ZERO, PriceBreakdown, price

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """Base class for checkout failures surfaced to the cashier."""


class ValidationError(CheckoutError):
    """Checkout input is not acceptable (empty cart, insufficient tender)."""


class SubmissionError(CheckoutError):
    """The order sink rejected the checkout or could not be reached."""


class UnknownOutcomeError(CheckoutError):
    """The order may have been created; check order history before retrying."""


class CheckoutInProgressError(CheckoutError):
    """Another checkout from this session is still being submitted."""


class CheckoutState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class CheckoutCommand:
    payment_method: PaymentMethod = PaymentMethod.CASH
    tendered: Optional[Decimal] = None
    discount: Decimal = ZERO
    table_id: Optional[int] = None


@dataclass(frozen=True)
class CheckoutReceipt:
    order_id: int
    order_number: str
    breakdown: PriceBreakdown
    payment_method: PaymentMethod
    tendered: Decimal
    change: Decimal
    order: Optional[Order] = None


class CheckoutOrchestrator:
    """Validates a checkout, submits it once and settles the cart.

    The cart is only cleared after the order sink confirms the order. A
    rejection keeps the cart for a retry; an ambiguous answer keeps it too and
    raises ``UnknownOutcomeError`` so the caller checks history first.
    """

    def __init__(
        self,
        ledger: CartLedger,
        order_sink: OrderSink,
        *,
        tax_rate: Decimal,
        clamp_discount: bool = True,
    ):
        self._ledger = ledger
        self._sink = order_sink
        self._tax_rate = tax_rate
        self._clamp_discount = clamp_discount
        self._in_flight = threading.Lock()
        self._state = CheckoutState.IDLE

    @property
    def state(self) -> CheckoutState:
        return self._state

    def quote(self, discount: Decimal = ZERO) -> PriceBreakdown:
        return price(
            self._ledger.subtotal(),
            discount,
            self._tax_rate,
            clamp_discount=self._clamp_discount,
        )

    def checkout(self, command: CheckoutCommand) -> CheckoutReceipt:
        if not self._in_flight.acquire(blocking=False):
            logger.warning("Checkout ignored: a submission is already in flight")
            raise CheckoutInProgressError("A checkout is already being processed.")
        try:
            return self._run(command)
        finally:
            self._in_flight.release()

    def _run(self, command: CheckoutCommand) -> CheckoutReceipt:
        self._state = CheckoutState.VALIDATING
        try:
            method = _payment_method(command.payment_method)
            breakdown = self._validate(command)
            offered = command.tendered if command.tendered is not None else breakdown.total
            settled = _settlement_amount(method, offered, breakdown.total)
        except ValidationError:
            self._state = CheckoutState.IDLE
            raise

        snapshot = self._ledger.lines()
        request = CheckoutRequest(
            items=tuple(_checkout_line(line) for line in snapshot),
            payment_method=method,
            payment_amount=settled,
            discount=breakdown.discount,
            tax_rate=self._tax_rate,
            table_id=command.table_id,
        )

        self._state = CheckoutState.SUBMITTING
        logger.info(
            "Submitting checkout table=%s lines=%d total=%s method=%s",
            command.table_id,
            len(request.items),
            breakdown.total,
            method.value,
        )
        try:
            result = self._sink.submit_checkout(request)
        except OrderOutcomeUnknown as exc:
            self._state = CheckoutState.FAILED
            logger.warning("Checkout outcome unknown: %s", exc)
            raise UnknownOutcomeError(
                f"Checkout outcome unknown ({exc}). Check order history before retrying."
            ) from exc
        except OrderSinkError as exc:
            self._state = CheckoutState.FAILED
            logger.warning("Checkout failed: %s", exc)
            raise SubmissionError(str(exc)) from exc
        except Exception:
            self._state = CheckoutState.FAILED
            raise

        self._settle_ledger(snapshot)
        self._state = CheckoutState.SUCCEEDED
        logger.info("Checkout confirmed order=%s id=%s", result.order_number, result.order_id)
        return CheckoutReceipt(
            order_id=result.order_id,
            order_number=result.order_number,
            breakdown=breakdown,
            payment_method=method,
            tendered=settled,
            change=breakdown.change(settled),
            order=result.order,
        )

    def _validate(self, command: CheckoutCommand) -> PriceBreakdown:
        if self._ledger.is_empty:
            raise ValidationError("Cart is empty.")
        if command.discount < ZERO:
            raise ValidationError("Discount cannot be negative.")
        if command.tendered is not None and command.tendered < ZERO:
            raise ValidationError("Payment amount cannot be negative.")
        breakdown = self.quote(command.discount)
        if command.tendered is not None and command.tendered < breakdown.total:
            raise ValidationError("Insufficient payment amount.")
        return breakdown

    def _settle_ledger(self, submitted: tuple[CartLine, ...]) -> None:
        if self._ledger.lines() == submitted:
            self._ledger.clear()
            return
        # Cart was edited while the order was in flight; keep only the edits.
        for line in submitted:
            remaining = self._ledger.quantity_of(line.product_id) - line.qty
            self._ledger.set_quantity(line.product_id, remaining)
        logger.info("Cart edited during checkout; %d line(s) kept", len(self._ledger))


def _payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown payment method: {value!r}") from exc


def _settlement_amount(method: PaymentMethod, offered: Decimal, total: Decimal) -> Decimal:
    """Amount recorded as paid; only cash can be over-tendered for change."""
    if method is PaymentMethod.CASH:
        return offered
    if method in (PaymentMethod.CARD, PaymentMethod.QR, PaymentMethod.TRANSFER):
        return total
    raise AssertionError(f"Unhandled payment method: {method!r}")


def _checkout_line(line: CartLine) -> CheckoutLine:
    return CheckoutLine(
        product_id=line.product_id,
        name=line.product.name,
        qty=line.qty,
        price=line.product.price,
        notes=line.notes,
    )
