from __future__ import annotations

from decimal import Decimal
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from . import models
from .pricing import format_money

# JSON numbers on the wire, Decimal in memory.
Money = Annotated[
    Decimal, PlainSerializer(lambda value: float(value), return_type=float, when_used="json")
]

# Amounts shown to the cashier, rounded to the minor unit.
DisplayMoney = Annotated[
    Decimal,
    PlainSerializer(lambda value: float(format_money(value)), return_type=float, when_used="json"),
]


class HealthResponse(BaseModel):
    status: Literal["ok"]


class MultiLangPayload(BaseModel):
    th: str = ""
    en: str = ""

    def to_model(self) -> models.MultiLang:
        return models.MultiLang(th=self.th, en=self.en)

    @classmethod
    def from_model(cls, value: models.MultiLang) -> "MultiLangPayload":
        return cls(th=value.th, en=value.en)


def _optional_lang(value: Optional[MultiLangPayload]) -> Optional[models.MultiLang]:
    return value.to_model() if value is not None else None


class CategoryPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: MultiLangPayload
    description: Optional[MultiLangPayload] = None
    sort_order: int = 0
    is_active: bool = True

    def to_model(self) -> models.Category:
        return models.Category(
            id=self.id,
            name=self.name.to_model(),
            sort_order=self.sort_order,
            is_active=self.is_active,
            description=_optional_lang(self.description),
        )


class ProductPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: MultiLangPayload
    description: Optional[MultiLangPayload] = None
    price: Money = Field(..., ge=0)
    sku: Optional[str] = None
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    is_active: bool = True

    def to_model(self) -> models.Product:
        return models.Product(
            id=self.id,
            name=self.name.to_model(),
            price=self.price,
            category_id=self.category_id,
            is_active=self.is_active,
            sku=self.sku,
            description=_optional_lang(self.description),
            image_url=self.image_url,
        )

    @classmethod
    def from_model(cls, product: models.Product) -> "ProductPayload":
        return cls(
            id=product.id,
            name=MultiLangPayload.from_model(product.name),
            description=(
                MultiLangPayload.from_model(product.description) if product.description else None
            ),
            price=product.price,
            sku=product.sku,
            image_url=product.image_url,
            category_id=product.category_id,
            is_active=product.is_active,
        )


class TablePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    table_number: str
    name: Optional[MultiLangPayload] = None
    capacity: int = 0
    is_active: bool = True

    def to_model(self) -> models.Table:
        return models.Table(
            id=self.id,
            table_number=self.table_number,
            capacity=self.capacity,
            is_active=self.is_active,
            name=_optional_lang(self.name),
        )


class OrderItemPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    order_id: int
    product_id: int
    name: MultiLangPayload
    qty: int
    price: Money
    total: Money
    notes: Optional[str] = None

    def to_model(self) -> models.OrderItem:
        return models.OrderItem(
            id=self.id,
            order_id=self.order_id,
            product_id=self.product_id,
            name=self.name.to_model(),
            qty=self.qty,
            price=self.price,
            total=self.total,
            notes=self.notes,
        )


class OrderPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    order_number: str
    table_id: Optional[int] = None
    status: models.OrderStatus
    subtotal: Money
    tax: Money
    discount: Money
    total: Money
    created_at: str
    updated_at: str
    order_items: List[OrderItemPayload] = Field(default_factory=list)

    def to_model(self) -> models.Order:
        return models.Order(
            id=self.id,
            order_number=self.order_number,
            status=self.status,
            subtotal=self.subtotal,
            tax=self.tax,
            discount=self.discount,
            total=self.total,
            created_at=self.created_at,
            updated_at=self.updated_at,
            table_id=self.table_id,
            items=tuple(item.to_model() for item in self.order_items),
        )

    @classmethod
    def from_model(cls, order: models.Order) -> "OrderPayload":
        return cls(
            id=order.id,
            order_number=order.order_number,
            table_id=order.table_id,
            status=order.status,
            subtotal=order.subtotal,
            tax=order.tax,
            discount=order.discount,
            total=order.total,
            created_at=order.created_at,
            updated_at=order.updated_at,
            order_items=[
                OrderItemPayload(
                    id=item.id,
                    order_id=item.order_id,
                    product_id=item.product_id,
                    name=MultiLangPayload.from_model(item.name),
                    qty=item.qty,
                    price=item.price,
                    total=item.total,
                    notes=item.notes,
                )
                for item in order.items
            ],
        )


class CheckoutLinePayload(BaseModel):
    product_id: int
    name: MultiLangPayload
    qty: int = Field(..., gt=0)
    price: Money
    notes: Optional[str] = None


class CheckoutRequestPayload(BaseModel):
    """Body of ``POST /pos_checkout``."""

    table_id: Optional[int] = None
    items: List[CheckoutLinePayload]
    payment_method: models.PaymentMethod
    payment_amount: Money
    discount: Money
    tax_rate: Money

    @classmethod
    def from_model(cls, request: models.CheckoutRequest) -> "CheckoutRequestPayload":
        return cls(
            table_id=request.table_id,
            items=[
                CheckoutLinePayload(
                    product_id=line.product_id,
                    name=MultiLangPayload.from_model(line.name),
                    qty=line.qty,
                    price=line.price,
                    notes=line.notes,
                )
                for line in request.items
            ],
            payment_method=request.payment_method,
            payment_amount=request.payment_amount,
            discount=request.discount,
            tax_rate=request.tax_rate,
        )


class CheckoutOrderRef(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    order_number: str


class CheckoutResponsePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    order: CheckoutOrderRef


# Terminal API bodies


class SelectTableRequest(BaseModel):
    table_id: Optional[int] = Field(default=None, description="None means take-away")


class AddCartItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(default=1, gt=0)


class UpdateCartItemRequest(BaseModel):
    quantity: int
    notes: Optional[str] = None


class CartLineSummary(BaseModel):
    product: ProductPayload
    qty: int
    notes: Optional[str] = None
    line_total: DisplayMoney


class QuoteSummary(BaseModel):
    subtotal: DisplayMoney
    discount: DisplayMoney
    taxable_base: DisplayMoney
    tax: DisplayMoney
    total: DisplayMoney
    change: DisplayMoney


class CartSummary(BaseModel):
    table_id: Optional[int] = None
    items: List[CartLineSummary]
    total_items: int
    subtotal: DisplayMoney


class CheckoutCommandRequest(BaseModel):
    payment_method: models.PaymentMethod = models.PaymentMethod.CASH
    payment_amount: Optional[Decimal] = Field(
        default=None, description="Tendered amount; omitted means exact payment"
    )
    discount: Decimal = Decimal("0")


class CheckoutReceiptSummary(BaseModel):
    order_id: int
    order_number: str
    payment_method: models.PaymentMethod
    tendered: DisplayMoney
    change: DisplayMoney
    quote: QuoteSummary
