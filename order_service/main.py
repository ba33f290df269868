"""
main.py — FastAPI Entry Point for the Order Service

This module exposes the order workflow over HTTP and wires its collaborators.

Responsibilities:
    • Create orders and return their payment session
    • List, read and update orders
    • Connect the database and start the payment event listener at startup
    • Map classified workflow errors to HTTP responses
"""

import threading
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .clients import PaymentEventListener, PaymentSessionClient, ProductValidatorClient
from .config import settings
from .errors import OrderServiceError
from .logging_config import get_logger, setup_logging
from .models import (
    CreateOrderRequest,
    CreateOrderResult,
    OrderPagination,
    OrderStatus,
    OrderSummary,
    OrderWithItems,
    PaginatedOrders,
    UpdateOrderStatusRequest,
)
from .repository import OrderRepository
from .workflow import OrderWorkflow

# Initialization
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Order Service")


@app.on_event("startup")
def on_startup():
    """
    Connects the database, builds the workflow and starts the payment event
    listener in a daemon thread.
    """
    log.info("Order service starting...")
    repository = OrderRepository(settings.database_url)
    repository.connect()

    workflow = OrderWorkflow(
        repository=repository,
        validator=ProductValidatorClient(),
        payments=PaymentSessionClient(),
        currency=settings.default_currency,
    )
    app.state.workflow = workflow

    listener = PaymentEventListener(handler=workflow.on_payment_succeeded)
    listener_thread = threading.Thread(target=listener.run, daemon=True)
    listener_thread.start()
    log.info("Payment event listener thread started.")


@app.on_event("shutdown")
def on_shutdown():
    workflow = getattr(app.state, "workflow", None)
    if workflow is None:
        return
    workflow.validator.close()
    workflow.payments.close()
    workflow.repository.disconnect()
    log.info("Order service stopped.")


def get_workflow(request: Request) -> OrderWorkflow:
    return request.app.state.workflow


@app.exception_handler(OrderServiceError)
async def handle_order_service_error(request: Request, exc: OrderServiceError):
    if not exc.is_client_error:
        log.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.post("/orders", status_code=201, response_model=CreateOrderResult)
def create_order(order: CreateOrderRequest, workflow: OrderWorkflow = Depends(get_workflow)):
    """
    Creates an order and opens its payment session.

    A 400 response carrying `orderId` means the order was stored but the
    payment session was not; use `POST /orders/{id}/payment-session` to retry.
    """
    return workflow.create_order(order)


@app.get("/orders", response_model=PaginatedOrders)
def list_orders(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1),
        status: Optional[OrderStatus] = None,
        workflow: OrderWorkflow = Depends(get_workflow)
):
    return workflow.list_orders(OrderPagination(page=page, limit=limit, status=status))


@app.get("/orders/{order_id}", response_model=OrderWithItems)
def get_order(order_id: str, workflow: OrderWorkflow = Depends(get_workflow)):
    return workflow.get_order(order_id)


@app.patch("/orders/{order_id}/status", response_model=OrderSummary)
def update_order_status(
        order_id: str,
        body: UpdateOrderStatusRequest,
        workflow: OrderWorkflow = Depends(get_workflow)
):
    return workflow.update_order_status(order_id, body.status)


@app.post("/orders/{order_id}/payment-session")
def retry_payment_session(order_id: str, workflow: OrderWorkflow = Depends(get_workflow)):
    return workflow.retry_payment_session(order_id)


# Health Check Endpoint
@app.get("/health")
def health_check():
    return {"status": "ok"}
