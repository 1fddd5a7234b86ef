from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from pos_terminal.events import ChangeFeed
from pos_terminal.models import CheckoutLine, CheckoutRequest, MultiLang, OrderStatus, PaymentMethod
from pos_terminal.order_client import (
    InMemoryOrderSink,
    InvalidStatusTransition,
    OrderRejected,
    OrderSinkError,
)
from pos_terminal.order_history import OrderHistory

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def request_for(qty: int = 1) -> CheckoutRequest:
    return CheckoutRequest(
        items=(CheckoutLine(product_id=1, name=MultiLang("ผัดไทย", "Pad Thai"), qty=qty, price=Decimal("60.00")),),
        payment_method=PaymentMethod.CASH,
        payment_amount=Decimal("1000"),
        discount=Decimal("0"),
        tax_rate=Decimal("0.07"),
    )


@pytest.fixture()
def feed():
    return ChangeFeed()


@pytest.fixture()
def sink(feed):
    return InMemoryOrderSink(feed, failure_mode="none", clock=lambda: NOW)


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED, True),
        (OrderStatus.CONFIRMED, OrderStatus.PREPARING, True),
        (OrderStatus.PREPARING, OrderStatus.READY, True),
        (OrderStatus.READY, OrderStatus.COMPLETED, True),
        (OrderStatus.PENDING, OrderStatus.CANCELLED, True),
        (OrderStatus.CONFIRMED, OrderStatus.CANCELLED, True),
        (OrderStatus.PREPARING, OrderStatus.CANCELLED, False),
        (OrderStatus.READY, OrderStatus.PREPARING, False),
        (OrderStatus.PENDING, OrderStatus.READY, False),
        (OrderStatus.COMPLETED, OrderStatus.CANCELLED, False),
        (OrderStatus.CANCELLED, OrderStatus.CONFIRMED, False),
    ],
)
def test_status_lifecycle(current, target, allowed):
    assert current.can_transition_to(target) is allowed


def test_sink_advances_and_refuses_backwards(sink):
    result = sink.submit_checkout(request_for())
    assert sink.advance(result.order_id, OrderStatus.PREPARING).status is OrderStatus.PREPARING

    with pytest.raises(InvalidStatusTransition):
        sink.advance(result.order_id, OrderStatus.CONFIRMED)


def test_order_number_format(sink):
    result = sink.submit_checkout(request_for())
    assert result.order_number == "ORD-20261019-0001"


def test_history_reloads_on_status_change(feed, sink):
    history = OrderHistory(sink, since=lambda: NOW - timedelta(hours=12))
    history.attach()
    assert history.orders() == []

    first = sink.submit_checkout(request_for())
    feed.drain()
    assert [order.order_number for order in history.orders()] == [first.order_number]

    sink.advance(first.order_id, OrderStatus.PREPARING)
    feed.drain()
    assert history.find(first.order_number).status is OrderStatus.PREPARING


def test_history_excludes_older_orders(sink):
    sink.submit_checkout(request_for())
    history = OrderHistory(sink, since=lambda: NOW + timedelta(minutes=1))
    history.load()
    assert history.orders() == []


class BrokenSink:
    def list_orders(self, since):
        raise OrderSinkError("order service down")


def test_history_failure_degrades_to_empty(caplog):
    history = OrderHistory(BrokenSink())
    history.load()
    assert history.orders() == []
    assert "order service down" in caplog.text


def test_stock_rejection_names_product_with_thai_fallback(feed):
    sink = InMemoryOrderSink(feed, stock={1: 0}, failure_mode="none", clock=lambda: NOW)
    request = CheckoutRequest(
        items=(CheckoutLine(product_id=1, name=MultiLang("ผัดไทย", ""), qty=1, price=Decimal("60.00")),),
        payment_method=PaymentMethod.CASH,
        payment_amount=Decimal("100"),
        discount=Decimal("0"),
        tax_rate=Decimal("0.07"),
    )
    with pytest.raises(OrderRejected) as excinfo:
        sink.submit_checkout(request)
    assert "Insufficient stock for ผัดไทย" in str(excinfo.value)
