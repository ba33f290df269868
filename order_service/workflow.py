"""
workflow.py — Core Orchestration Logic for Orders

This module coordinates the product service, pricing, persistence and the
payment service for every order operation.

Workflow Overview (create order):
1. Validate the requested products via the Product Service (gRPC)
2. Price the order from the validated catalog
3. Persist the order header and lines in one transaction
4. Request a payment session via the Payment Service (REST)

Only step 4 can fail after something was committed. The order is kept in
that case and the error carries its id, so the session can be requested again
with `retry_payment_session()`.

Status updates only reject a transition to the status the order already has.
Any other status change is accepted, including PAID -> PENDING.
"""

import logging
import math

from .errors import NoOpTransitionError, PaymentRequestError
from .models import (
    CreateOrderRequest,
    CreateOrderResult,
    OrderPagination,
    OrderStatus,
    OrderSummary,
    OrderWithItems,
    PageMeta,
    PaginatedOrders,
    PaidOrderEvent,
    PaymentSessionItem,
    PaymentSessionRequest,
)
from .pricing import price_order

log = logging.getLogger(__name__)


class OrderWorkflow:
    """
    Runs order operations against explicitly wired collaborators.

    Args:
        repository: Persistence gateway (see `OrderRepository`).
        validator: Product validation client with a `validate(ids)` method.
        payments: Payment client with a `create_payment_session(request)` method.
        currency (str): Currency used for every payment session.
    """

    def __init__(self, repository, validator, payments, currency: str = "usd"):
        self.repository = repository
        self.validator = validator
        self.payments = payments
        self.currency = currency

    def create_order(self, request: CreateOrderRequest) -> CreateOrderResult:
        """
        Validates, prices and persists a new order, then opens its payment session.

        Raises:
            ProductValidationError: The product service rejected the ids. Nothing is persisted.
            PricingError: An item has no validated product. Nothing is persisted.
            PersistenceError: The order could not be stored.
            PaymentRequestError: The order was stored but no session could be created;
                `order_id` is set on the error.
        """
        # Distinct ids, first-seen order
        product_ids = list(dict.fromkeys(item.product_id for item in request.items))

        log.info(f"Step 1: validating {len(product_ids)} product(s) with the product service...")
        catalog = self.validator.validate(product_ids)

        log.info("Step 2: pricing order from validated catalog...")
        priced = price_order(request.items, catalog)

        log.info("Step 3: persisting order...")
        order = self.repository.create_order(priced.total_amount, priced.total_items, priced.lines)
        log_prefix = f"[Order: {order.id}]"
        log.info(f"{log_prefix} Order persisted. Total {order.total_amount} for {order.total_items} item(s).")

        log.info(f"{log_prefix} Step 4: requesting payment session...")
        try:
            payment_session = self.create_payment_session(order)
        except PaymentRequestError as e:
            log.warning(f"{log_prefix} Payment session failed, order is kept for retry: {e}")
            e.order_id = order.id
            raise

        log.info(f"{log_prefix} Order created and payment session opened.")
        return CreateOrderResult(order=order, payment_session=payment_session)

    def create_payment_session(self, order: OrderWithItems) -> dict:
        request = PaymentSessionRequest(
            order_id=order.id,
            currency=self.currency,
            items=[
                PaymentSessionItem(name=line.product_name, price=line.price, quantity=line.quantity)
                for line in order.items
            ],
        )
        return self.payments.create_payment_session(request)

    def retry_payment_session(self, order_id: str) -> dict:
        """Requests a new payment session for an order that already exists."""
        order = self.repository.get_order(order_id)
        log.info(f"[Order: {order_id}] Retrying payment session request.")
        return self.create_payment_session(order)

    def get_order(self, order_id: str) -> OrderWithItems:
        return self.repository.get_order(order_id)

    def list_orders(self, pagination: OrderPagination) -> PaginatedOrders:
        orders, total = self.repository.list_orders(
            status=pagination.status, page=pagination.page, limit=pagination.limit
        )
        return PaginatedOrders(
            data=orders,
            meta=PageMeta(
                total=total,
                page=pagination.page,
                last_page=math.ceil(total / pagination.limit),
            ),
        )

    def update_order_status(self, order_id: str, status: OrderStatus) -> OrderSummary:
        """
        Raises:
            OrderNotFoundError: No order with that id.
            NoOpTransitionError: The order already has `status`.
        """
        current = self.repository.get_order(order_id)
        if current.status == status:
            raise NoOpTransitionError(f"Order already has status {status.value}")

        order = self.repository.update_status(order_id, status)
        log.info(f"[Order: {order_id}] Status changed {current.status.value} -> {status.value}.")
        return order

    def on_payment_succeeded(self, event: PaidOrderEvent) -> None:
        """
        Handles the payment.succeeded signal. Nothing is returned to the sender,
        so failures are logged here and never raised.
        """
        log_prefix = f"[Order: {event.order_id}]"
        try:
            self.repository.mark_paid(event.order_id, event.charge_id, event.receipt_url)
            log.info(f"{log_prefix} Order paid (charge {event.charge_id}).")
        except Exception as e:
            log.critical(f"{log_prefix} Could not mark order as paid: {e}", exc_info=True)
