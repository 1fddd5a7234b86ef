from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from pos_terminal.catalog_client import CatalogServiceError, HTTPCatalogClient
from pos_terminal.catalog_view import CatalogView
from pos_terminal.events import ChangeFeed
from pos_terminal.models import CheckoutLine, CheckoutRequest, MultiLang, OrderStatus, PaymentMethod
from pos_terminal.order_client import (
    HTTPOrderClient,
    OrderOutcomeUnknown,
    OrderRejected,
    OrderSinkError,
)

BASE_URL = "http://pos.test"

PRODUCT_ROWS = [
    {
        "id": 1,
        "name": {"th": "ผัดไทย", "en": "Pad Thai"},
        "price": 60.5,
        "category_id": 1,
        "is_active": True,
        "created_at": "2026-10-19T08:00:00+00:00",
    },
    {"id": 2, "name": {"th": "ชาไทย", "en": "Thai Tea"}, "price": 35, "is_active": True},
]

CATEGORY_ROWS = [
    {"id": 2, "name": {"th": "เครื่องดื่ม", "en": "Drinks"}, "sort_order": 2, "is_active": True},
    {"id": 1, "name": {"th": "อาหาร", "en": "Food"}, "sort_order": 1, "is_active": True},
]

ORDER_ROW = {
    "id": 11,
    "order_number": "ORD-20261019-0011",
    "table_id": 2,
    "status": "confirmed",
    "subtotal": 100,
    "tax": 6.3,
    "discount": 10,
    "total": 96.3,
    "created_at": "2026-10-19T09:00:00+00:00",
    "updated_at": "2026-10-19T09:00:00+00:00",
    "order_items": [
        {
            "id": 1,
            "order_id": 11,
            "product_id": 1,
            "name": {"th": "ผัดไทย", "en": "Pad Thai"},
            "qty": 1,
            "price": 100,
            "total": 100,
        }
    ],
}


def checkout_request() -> CheckoutRequest:
    return CheckoutRequest(
        items=(CheckoutLine(product_id=1, name=MultiLang("ผัดไทย", "Pad Thai"), qty=2, price=Decimal("50.00")),),
        payment_method=PaymentMethod.CASH,
        payment_amount=Decimal("100"),
        discount=Decimal("10"),
        tax_rate=Decimal("0.07"),
        table_id=2,
    )


def client_for(handler, cls):
    transport = httpx.MockTransport(handler)
    return cls(BASE_URL, ChangeFeed(), client=httpx.Client(transport=transport))


def test_list_products_parses_decimal_prices():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/products"
        assert request.url.params["is_active"] == "true"
        return httpx.Response(200, json=PRODUCT_ROWS)

    products = client_for(handler, HTTPCatalogClient).list_active_products()

    assert [product.id for product in products] == [1, 2]
    assert products[0].price == Decimal("60.5")
    assert products[0].name.en == "Pad Thai"
    assert products[1].category_id is None


def test_list_categories_sorted():
    client = client_for(lambda request: httpx.Response(200, json=CATEGORY_ROWS), HTTPCatalogClient)
    assert [category.id for category in client.list_active_categories()] == [1, 2]


def test_catalog_error_status_raises():
    client = client_for(lambda request: httpx.Response(500, text="boom"), HTTPCatalogClient)
    with pytest.raises(CatalogServiceError):
        client.list_active_products()


def test_catalog_unreachable_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CatalogServiceError):
        client_for(handler, HTTPCatalogClient).list_active_tables()


def test_catalog_non_json_body_raises_service_error():
    client = client_for(
        lambda request: httpx.Response(200, text="<html>maintenance</html>"), HTTPCatalogClient
    )
    with pytest.raises(CatalogServiceError):
        client.list_active_products()
    with pytest.raises(CatalogServiceError):
        client.list_active_tables()


def test_catalog_view_degrades_on_non_json_body(caplog):
    client = client_for(
        lambda request: httpx.Response(200, text="<html>maintenance</html>"), HTTPCatalogClient
    )
    view = CatalogView(client)
    view.load()

    assert view.products() == []
    assert view.categories() == []
    assert "Could not load" in caplog.text


def test_catalog_poll_publishes_only_on_change():
    rows = {"products": list(PRODUCT_ROWS)}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/categories":
            return httpx.Response(200, json=CATEGORY_ROWS)
        return httpx.Response(200, json=rows["products"])

    feed = ChangeFeed()
    client = HTTPCatalogClient(BASE_URL, feed, client=httpx.Client(transport=httpx.MockTransport(handler)))
    calls = []
    client.subscribe(lambda: calls.append("changed"))

    assert client.poll() is False  # first poll only records the snapshot
    assert client.poll() is False
    rows["products"] = [dict(PRODUCT_ROWS[0], price=65), PRODUCT_ROWS[1]]
    assert client.poll() is True

    feed.drain()
    assert calls == ["changed"]


def test_submit_checkout_body_and_result():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"order": ORDER_ROW})

    result = client_for(handler, HTTPOrderClient).submit_checkout(checkout_request())

    assert seen["path"] == "/pos_checkout"
    assert seen["body"] == {
        "table_id": 2,
        "items": [{"product_id": 1, "name": {"th": "ผัดไทย", "en": "Pad Thai"}, "qty": 2, "price": 50.0}],
        "payment_method": "cash",
        "payment_amount": 100.0,
        "discount": 10.0,
        "tax_rate": 0.07,
    }
    assert result.order_number == "ORD-20261019-0011"
    assert result.order is not None
    assert result.order.total == Decimal("96.3")


def test_submit_checkout_minimal_confirmation():
    client = client_for(
        lambda request: httpx.Response(201, json={"order": {"id": 3, "order_number": "A-3"}}),
        HTTPOrderClient,
    )
    result = client.submit_checkout(checkout_request())
    assert (result.order_id, result.order_number, result.order) == (3, "A-3", None)


def test_submit_checkout_rejection_carries_reason():
    client = client_for(
        lambda request: httpx.Response(
            409, json={"error": "Insufficient stock", "code": "insufficient_stock"}
        ),
        HTTPOrderClient,
    )
    with pytest.raises(OrderRejected) as excinfo:
        client.submit_checkout(checkout_request())
    assert excinfo.value.reason == "Insufficient stock"
    assert excinfo.value.code == "insufficient_stock"
    assert excinfo.value.status_code == 409


def test_connect_failure_is_definite():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(OrderSinkError) as excinfo:
        client_for(handler, HTTPOrderClient).submit_checkout(checkout_request())
    assert not isinstance(excinfo.value, OrderOutcomeUnknown)


def test_read_timeout_is_unknown_outcome():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(OrderOutcomeUnknown):
        client_for(handler, HTTPOrderClient).submit_checkout(checkout_request())


@pytest.mark.parametrize("status_code", [502, 504])
def test_gateway_errors_are_unknown_outcome(status_code):
    client = client_for(lambda request: httpx.Response(status_code, text="upstream"), HTTPOrderClient)
    with pytest.raises(OrderOutcomeUnknown):
        client.submit_checkout(checkout_request())


def test_unreadable_confirmation_is_unknown_outcome():
    client = client_for(lambda request: httpx.Response(200, text="<html>"), HTTPOrderClient)
    with pytest.raises(OrderOutcomeUnknown):
        client.submit_checkout(checkout_request())


def test_list_orders_with_items():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["since"].startswith("2026-10-19T00:00:00")
        return httpx.Response(200, json=[ORDER_ROW])

    since = datetime(2026, 10, 19, tzinfo=timezone.utc)
    orders = client_for(handler, HTTPOrderClient).list_orders(since)

    assert orders[0].status is OrderStatus.CONFIRMED
    assert orders[0].items[0].name.th == "ผัดไทย"


def test_list_orders_failure_raises():
    client = client_for(lambda request: httpx.Response(503), HTTPOrderClient)
    with pytest.raises(OrderSinkError):
        client.list_orders(datetime(2026, 10, 19, tzinfo=timezone.utc))
