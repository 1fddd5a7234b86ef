from __future__ import annotations

import random
from decimal import Decimal

import pytest

from pos_terminal.cart import CartLedger
from pos_terminal.models import MultiLang, Product


def make_product(product_id: int, price: str = "10.00", category_id: int | None = None) -> Product:
    return Product(
        id=product_id,
        name=MultiLang(f"สินค้า {product_id}", f"Item {product_id}"),
        price=Decimal(price),
        category_id=category_id,
    )


@pytest.fixture()
def ledger() -> CartLedger:
    return CartLedger()


def test_add_merges_quantities(ledger: CartLedger) -> None:
    product = make_product(1)
    ledger.add(product, 2)
    ledger.add(product, 3)

    assert len(ledger) == 1
    assert ledger.quantity_of(1) == 5


def test_add_defaults_to_one_and_keeps_insertion_order(ledger: CartLedger) -> None:
    ledger.add(make_product(2))
    ledger.add(make_product(1))
    ledger.add(make_product(2))

    assert [line.product_id for line in ledger] == [2, 1]
    assert ledger.quantity_of(2) == 2


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
def test_add_ignores_invalid_quantity(ledger: CartLedger, quantity) -> None:
    ledger.add(make_product(1), quantity)
    assert ledger.is_empty


def test_remove_absent_product_is_noop(ledger: CartLedger) -> None:
    ledger.add(make_product(1))
    ledger.remove(99)
    assert ledger.quantity_of(1) == 1


def test_set_quantity_is_absolute(ledger: CartLedger) -> None:
    ledger.add(make_product(1), 4)
    ledger.set_quantity(1, 2)
    assert ledger.quantity_of(1) == 2


def test_set_quantity_zero_removes_line(ledger: CartLedger) -> None:
    ledger.add(make_product(1), 4)
    ledger.add(make_product(2))
    ledger.set_quantity(1, 0)

    assert [line.product_id for line in ledger] == [2]


def test_set_quantity_unknown_product_does_nothing(ledger: CartLedger) -> None:
    ledger.set_quantity(7, 3)
    assert ledger.is_empty


def test_clear_twice(ledger: CartLedger) -> None:
    ledger.add(make_product(1))
    ledger.clear()
    assert ledger.is_empty
    ledger.clear()
    assert ledger.is_empty
    assert ledger.total_item_count() == 0


def test_totals(ledger: CartLedger) -> None:
    ledger.add(make_product(1, "12.50"), 2)
    ledger.add(make_product(2, "0.10"), 3)

    assert ledger.total_item_count() == 5
    assert ledger.subtotal() == Decimal("25.30")


def test_subtotal_uses_price_snapshot(ledger: CartLedger) -> None:
    ledger.add(make_product(1, "10.00"))
    # catalog raises the price after the product was added
    ledger.add(make_product(1, "15.00"))

    assert ledger.subtotal() == Decimal("20.00")


def test_notes_survive_quantity_changes(ledger: CartLedger) -> None:
    ledger.add(make_product(1))
    ledger.set_notes(1, "no ice")
    ledger.add(make_product(1))
    ledger.set_quantity(1, 5)

    assert ledger.lines()[0].notes == "no ice"


def test_random_mutations_keep_invariants(ledger: CartLedger) -> None:
    rng = random.Random(1234)
    products = [make_product(i) for i in range(1, 6)]
    for _ in range(2000):
        product = rng.choice(products)
        op = rng.choice(["add", "remove", "set"])
        if op == "add":
            ledger.add(product, rng.randint(-2, 4))
        elif op == "remove":
            ledger.remove(product.id)
        else:
            ledger.set_quantity(product.id, rng.randint(-2, 6))

        ids = [line.product_id for line in ledger]
        assert len(ids) == len(set(ids))
        assert all(line.qty > 0 for line in ledger)
