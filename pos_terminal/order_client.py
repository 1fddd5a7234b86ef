from __future__ import annotations

import itertools
import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError as PayloadError

from .events import ChangeCallback, ChangeFeed, Subscription
from .models import (
    CheckoutRequest,
    CheckoutResult,
    Order,
    OrderItem,
    OrderStatus,
)
from .pricing import ZERO, price
from .schemas import CheckoutRequestPayload, CheckoutResponsePayload, OrderPayload

logger = logging.getLogger(__name__)

ORDERS_TOPIC = "orders"

# Gateway answers that do not tell whether the upstream created the order.
AMBIGUOUS_STATUS_CODES = frozenset({502, 504})


class OrderSinkError(Exception):
    """Checkout could not be delivered to the order sink."""


class OrderRejected(OrderSinkError):
    """The order sink refused the checkout (stock, validation, payment)."""

    def __init__(self, reason: str, *, status_code: int | None = None, code: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.code = code


class OrderOutcomeUnknown(OrderSinkError):
    """The request may or may not have created an order."""


class InvalidStatusTransition(Exception):
    """Raised when an order is moved backwards or out of a terminal state."""


class OrderSink(Protocol):
    def submit_checkout(self, request: CheckoutRequest) -> CheckoutResult: ...

    def list_orders(self, since: datetime) -> List[Order]: ...

    def subscribe(self, on_change: ChangeCallback) -> Subscription: ...

    def unsubscribe(self, subscription: Subscription) -> None: ...


def start_of_day(now: datetime | None = None) -> datetime:
    now = now or datetime.now().astimezone()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class HTTPOrderClient:
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

    def submit_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        body = CheckoutRequestPayload.from_model(request).model_dump(mode="json", exclude_none=True)
        try:
            response = self._client.post(f"{self._base_url}/pos_checkout", json=body)
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            raise OrderSinkError(f"Order service unreachable: {exc}") from exc
        except httpx.HTTPError as exc:
            raise OrderOutcomeUnknown(f"No answer from order service: {exc}") from exc

        if response.status_code in AMBIGUOUS_STATUS_CODES:
            raise OrderOutcomeUnknown(
                f"Order service gateway error ({response.status_code}): {response.text}"
            )
        if response.status_code >= 400:
            raise OrderRejected(
                _error_message(response),
                status_code=response.status_code,
                code=_error_code(response),
            )

        try:
            payload = CheckoutResponsePayload.model_validate(response.json())
        except (ValueError, PayloadError) as exc:
            raise OrderOutcomeUnknown(f"Unreadable checkout confirmation: {exc}") from exc

        order: Optional[Order] = None
        try:
            order = OrderPayload.model_validate(payload.order.model_dump()).to_model()
        except PayloadError:
            # Confirmation only carried id and number.
            order = None
        return CheckoutResult(
            order_id=payload.order.id,
            order_number=payload.order.order_number,
            order=order,
        )

    def list_orders(self, since: datetime) -> List[Order]:
        try:
            response = self._client.get(
                f"{self._base_url}/orders",
                params={"since": since.isoformat(), "order": "created_at.desc"},
            )
        except httpx.HTTPError as exc:
            raise OrderSinkError(f"Order service unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise OrderSinkError(
                f"Order listing failed ({response.status_code}): {response.text}"
            )
        try:
            rows = response.json()
            orders = [OrderPayload.model_validate(row).to_model() for row in rows]
        except (ValueError, TypeError, PayloadError) as exc:
            raise OrderSinkError(f"Malformed order listing: {exc}") from exc
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def subscribe(self, on_change: ChangeCallback) -> Subscription:
        return self._feed.subscribe(ORDERS_TOPIC, on_change)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._feed.unsubscribe(subscription)

    def poll(self, since: datetime | None = None) -> bool:
        """Publish an order change if any order appeared or changed status."""
        try:
            orders = self.list_orders(since or start_of_day())
        except OrderSinkError as exc:
            logger.warning("Order poll failed: %s", exc)
            return False
        snapshot = tuple(sorted((order.id, order.status.value, order.updated_at) for order in orders))
        previous, self._last_snapshot = self._last_snapshot, snapshot
        if previous is None or previous == snapshot:
            return False
        self._feed.publish(ORDERS_TOPIC)
        return True


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"Checkout failed ({response.status_code})"
    if isinstance(payload, dict):
        message = payload.get("error") or payload.get("detail") or payload.get("message")
        if message:
            return str(message)
    return f"Checkout failed ({response.status_code})"


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and payload.get("code") is not None:
        return str(payload["code"])
    return None


class InMemoryOrderSink:
    """Order sink kept in process, for tests and offline mode.

    Prices the request with the same engine the terminal uses, checks stock
    when a stock table is given and records the order as ``confirmed``.
    ``failure_mode`` forces ``reject`` or ``unknown`` outcomes.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        *,
        stock: Dict[int, int] | None = None,
        failure_mode: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._feed = feed
        self._stock = dict(stock) if stock is not None else None
        mode = (failure_mode or os.environ.get("POS_SINK_FAILURE_MODE", "none")).lower()
        self._failure_mode = mode
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._orders: Dict[int, Order] = {}
        self._order_ids = itertools.count(1)
        self._item_ids = itertools.count(1)
        self.submissions: List[CheckoutRequest] = []

    def submit_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        self.submissions.append(request)
        if self._failure_mode == "reject":
            raise OrderRejected("Checkout rejected due to configured failure mode.")
        if self._failure_mode == "unknown":
            raise OrderOutcomeUnknown("Order service timed out (configured failure mode).")
        if not request.items:
            raise OrderRejected("Order has no items.", code="empty_order")

        if self._stock is not None:
            for line in request.items:
                available = self._stock.get(line.product_id, 0)
                if line.qty > available:
                    raise OrderRejected(
                        f"Insufficient stock for {line.name.get('en')}"
                        f" (requested {line.qty}, available {available})",
                        code="insufficient_stock",
                    )

        subtotal = sum((line.price * line.qty for line in request.items), ZERO)
        breakdown = price(subtotal, request.discount, request.tax_rate, clamp_discount=False)
        if request.payment_amount < breakdown.total:
            raise OrderRejected("Insufficient payment amount.", code="insufficient_payment")

        if self._stock is not None:
            for line in request.items:
                self._stock[line.product_id] -= line.qty

        now = self._clock()
        order_id = next(self._order_ids)
        items = tuple(
            OrderItem(
                id=next(self._item_ids),
                order_id=order_id,
                product_id=line.product_id,
                name=line.name,
                qty=line.qty,
                price=line.price,
                total=line.price * line.qty,
                notes=line.notes,
            )
            for line in request.items
        )
        order = Order(
            id=order_id,
            order_number=f"ORD-{now:%Y%m%d}-{order_id:04d}",
            status=OrderStatus.CONFIRMED,
            subtotal=breakdown.subtotal,
            tax=breakdown.tax,
            discount=breakdown.discount,
            total=breakdown.total,
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
            table_id=request.table_id,
            items=items,
        )
        self._orders[order_id] = order
        self._feed.publish(ORDERS_TOPIC)
        return CheckoutResult(order_id=order.id, order_number=order.order_number, order=order)

    def list_orders(self, since: datetime) -> List[Order]:
        orders = [
            order
            for order in self._orders.values()
            if datetime.fromisoformat(order.created_at) >= since
        ]
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def get_order(self, order_id: int) -> Optional[Order]:
        return self._orders.get(order_id)

    def advance(self, order_id: int, status: OrderStatus) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise KeyError(order_id)
        if not order.status.can_transition_to(status):
            raise InvalidStatusTransition(
                f"Order {order.order_number} cannot move from {order.status.value} to {status.value}"
            )
        updated = replace(order, status=status, updated_at=self._clock().isoformat())
        self._orders[order_id] = updated
        self._feed.publish(ORDERS_TOPIC)
        return updated

    def subscribe(self, on_change: ChangeCallback) -> Subscription:
        return self._feed.subscribe(ORDERS_TOPIC, on_change)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._feed.unsubscribe(subscription)
