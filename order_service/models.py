"""
models.py — Data Models for the Order Service

Pydantic models for everything that crosses a service boundary: incoming
requests, records returned by the product service, persisted orders handed
back to callers, and the payloads exchanged with the payment service.

Attributes are snake_case in Python and camelCase on the wire.

Models:
    - OrderItemRequest / CreateOrderRequest: order creation input.
    - ValidatedProduct: authoritative product record from the product service.
    - OrderLine / OrderSummary / OrderWithItems: persisted order views.
    - OrderPagination / PaginatedOrders: listing input and output.
    - PaymentSessionRequest: payload sent to the payment service.
    - PaidOrderEvent: payload of the `payment.succeeded` signal.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class CamelModel(BaseModel):
    """Base model: camelCase aliases on the wire, readable from ORM objects."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class OrderItemRequest(CamelModel):
    """
    A single requested product in a new order.

    Attributes:
        product_id (str): Identifier of the product in the product service.
        quantity (int): Number of units. Must be greater than zero.
    """
    product_id: str
    quantity: int = Field(..., gt=0)


class CreateOrderRequest(CamelModel):
    items: List[OrderItemRequest] = Field(..., min_length=1)


class ValidatedProduct(CamelModel):
    """Product record as returned by the product service."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    price: Decimal = Field(..., ge=0)


class OrderLine(CamelModel):
    """
    One line of an order. The price is a snapshot taken when the order was
    created and does not follow later catalog price changes.
    """
    product_id: str
    quantity: int
    price: Decimal
    product_name: str


class OrderSummary(CamelModel):
    """Order header without its lines."""
    id: str
    status: OrderStatus
    total_amount: Decimal
    total_items: int
    paid: bool
    paid_at: Optional[datetime] = None
    payment_charge_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class OrderWithItems(OrderSummary):
    items: List[OrderLine]


class OrderPagination(CamelModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)
    status: Optional[OrderStatus] = None


class PageMeta(CamelModel):
    total: int
    page: int
    last_page: int


class PaginatedOrders(CamelModel):
    data: List[OrderSummary]
    meta: PageMeta


class UpdateOrderStatusRequest(CamelModel):
    status: OrderStatus


class PaymentSessionItem(CamelModel):
    name: str
    price: Decimal
    quantity: int


class PaymentSessionRequest(CamelModel):
    """
    Payload sent to the payment service to open a checkout session.

    Attributes:
        order_id (str): Order the session collects funds for.
        currency (str): ISO 4217 currency code, lower case (e.g. 'usd').
        items (List[PaymentSessionItem]): Name, unit price and quantity per line.
    """
    order_id: str
    currency: str
    items: List[PaymentSessionItem]


class CreateOrderResult(CamelModel):
    order: OrderWithItems
    payment_session: dict


class PaidOrderEvent(CamelModel):
    """
    Payload of the `payment.succeeded` signal emitted by the payment service.

    `stripePaymentId` is accepted as an alternative name for `chargeId`.
    """
    order_id: str
    charge_id: str = Field(
        ...,
        validation_alias=AliasChoices("chargeId", "charge_id", "stripePaymentId"),
    )
    receipt_url: str


class OrderReceiptOut(CamelModel):
    id: int
    order_id: str
    receipt_url: str
    created_at: datetime
