from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware

from . import schemas
from .checkout import (
    CheckoutInProgressError,
    CheckoutReceipt,
    SubmissionError,
    UnknownOutcomeError,
    ValidationError,
)
from .config import Settings, load_settings
from .pricing import PriceBreakdown, to_money
from .session import PosSession, ProductUnavailableError, UnknownTableError, build_session


def get_session(request: Request) -> PosSession:
    return request.app.state.session


def _cart_summary(session: PosSession) -> schemas.CartSummary:
    return schemas.CartSummary(
        table_id=session.table_id,
        items=[
            schemas.CartLineSummary(
                product=schemas.ProductPayload.from_model(line.product),
                qty=line.qty,
                notes=line.notes,
                line_total=line.line_total,
            )
            for line in session.ledger
        ],
        total_items=session.ledger.total_item_count(),
        subtotal=session.ledger.subtotal(),
    )


def _quote_summary(breakdown: PriceBreakdown, change: Decimal) -> schemas.QuoteSummary:
    return schemas.QuoteSummary(
        subtotal=breakdown.subtotal,
        discount=breakdown.discount,
        taxable_base=breakdown.taxable_base,
        tax=breakdown.tax,
        total=breakdown.total,
        change=change,
    )


def _receipt_summary(receipt: CheckoutReceipt) -> schemas.CheckoutReceiptSummary:
    return schemas.CheckoutReceiptSummary(
        order_id=receipt.order_id,
        order_number=receipt.order_number,
        payment_method=receipt.payment_method,
        tendered=receipt.tendered,
        change=receipt.change,
        quote=_quote_summary(receipt.breakdown, receipt.change),
    )


def _money_param(value: Optional[str], name: str) -> Optional[Decimal]:
    try:
        return to_money(value, default=None)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"{name}: {exc}")


def create_app(session: PosSession | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    if session is None:
        session = build_session(settings)
    session.start()

    app = FastAPI(
        title="POS Terminal",
        version="0.1.0",
        description="Cart, pricing and checkout for a point-of-sale terminal.",
    )
    app.state.session = session
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz", response_model=schemas.HealthResponse, tags=["system"])
    def healthz() -> schemas.HealthResponse:
        return schemas.HealthResponse(status="ok")

    @app.get("/categories", response_model=List[schemas.CategoryPayload], tags=["catalog"])
    def list_categories(
        session: PosSession = Depends(get_session),
    ) -> List[schemas.CategoryPayload]:
        session.pump()
        return [
            schemas.CategoryPayload(
                id=category.id,
                name=schemas.MultiLangPayload.from_model(category.name),
                sort_order=category.sort_order,
                is_active=category.is_active,
            )
            for category in session.catalog.categories()
        ]

    @app.get("/menu", response_model=List[schemas.ProductPayload], tags=["catalog"])
    def menu(
        category_id: Optional[int] = None,
        q: str = "",
        session: PosSession = Depends(get_session),
    ) -> List[schemas.ProductPayload]:
        session.pump()
        session.catalog.select(category_id, q)
        return [schemas.ProductPayload.from_model(product) for product in session.catalog.products()]

    @app.get("/tables", response_model=List[schemas.TablePayload], tags=["catalog"])
    def list_tables(session: PosSession = Depends(get_session)) -> List[schemas.TablePayload]:
        return [
            schemas.TablePayload(
                id=table.id,
                table_number=table.table_number,
                name=schemas.MultiLangPayload.from_model(table.name) if table.name else None,
                capacity=table.capacity,
                is_active=table.is_active,
            )
            for table in session.list_tables()
        ]

    @app.put("/session/table", response_model=schemas.CartSummary, tags=["cart"])
    def select_table(
        payload: schemas.SelectTableRequest,
        session: PosSession = Depends(get_session),
    ) -> schemas.CartSummary:
        try:
            session.select_table(payload.table_id)
        except UnknownTableError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        return _cart_summary(session)

    @app.get("/cart", response_model=schemas.CartSummary, tags=["cart"])
    def get_cart(session: PosSession = Depends(get_session)) -> schemas.CartSummary:
        return _cart_summary(session)

    @app.post(
        "/cart/items",
        response_model=schemas.CartSummary,
        status_code=status.HTTP_201_CREATED,
        tags=["cart"],
    )
    def add_cart_item(
        payload: schemas.AddCartItemRequest,
        session: PosSession = Depends(get_session),
    ) -> schemas.CartSummary:
        try:
            session.add_product(payload.product_id, payload.quantity)
        except ProductUnavailableError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        return _cart_summary(session)

    @app.put("/cart/items/{product_id}", response_model=schemas.CartSummary, tags=["cart"])
    def update_cart_item(
        product_id: int,
        payload: schemas.UpdateCartItemRequest,
        session: PosSession = Depends(get_session),
    ) -> schemas.CartSummary:
        session.ledger.set_quantity(product_id, payload.quantity)
        if payload.notes is not None:
            session.ledger.set_notes(product_id, payload.notes)
        return _cart_summary(session)

    @app.delete("/cart/items/{product_id}", response_model=schemas.CartSummary, tags=["cart"])
    def remove_cart_item(
        product_id: int, session: PosSession = Depends(get_session)
    ) -> schemas.CartSummary:
        session.ledger.remove(product_id)
        return _cart_summary(session)

    @app.delete("/cart", response_model=schemas.CartSummary, tags=["cart"])
    def clear_cart(session: PosSession = Depends(get_session)) -> schemas.CartSummary:
        session.ledger.clear()
        return _cart_summary(session)

    @app.get("/cart/quote", response_model=schemas.QuoteSummary, tags=["cart"])
    def quote(
        discount: Optional[str] = None,
        tendered: Optional[str] = None,
        session: PosSession = Depends(get_session),
    ) -> schemas.QuoteSummary:
        breakdown = session.quote(_money_param(discount, "discount") or Decimal("0"))
        return _quote_summary(breakdown, breakdown.change(_money_param(tendered, "tendered")))

    @app.post("/checkout", response_model=schemas.CheckoutReceiptSummary, tags=["checkout"])
    def checkout(
        payload: schemas.CheckoutCommandRequest,
        session: PosSession = Depends(get_session),
    ) -> schemas.CheckoutReceiptSummary:
        try:
            receipt = session.checkout(
                payment_method=payload.payment_method,
                tendered=payload.payment_amount,
                discount=payload.discount,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        except CheckoutInProgressError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        except SubmissionError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
        except UnknownOutcomeError as exc:
            raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc))
        return _receipt_summary(receipt)

    @app.get("/orders", response_model=List[schemas.OrderPayload], tags=["orders"])
    def list_orders(session: PosSession = Depends(get_session)) -> List[schemas.OrderPayload]:
        session.pump()
        return [schemas.OrderPayload.from_model(order) for order in session.history.orders()]

    return app
