"""
errors.py — Classified errors raised by the order workflow.

Every error carries a human readable message and an HTTP-style status code.
Codes below 500 are client errors, the rest are server errors. Nothing in
the core retries; the transport layer maps these to its own wire format.
"""

from typing import Optional


class OrderServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500

    def to_dict(self) -> dict:
        return {"status": self.status_code, "message": self.message}


class ProductValidationError(OrderServiceError):
    """The product service rejected or could not resolve the requested ids."""
    status_code = 400


class PricingError(OrderServiceError):
    """A requested item has no matching record in the validated catalog."""
    status_code = 400


class OrderNotFoundError(OrderServiceError):
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(f"Order with id {order_id} not found")
        self.order_id = order_id


class NoOpTransitionError(OrderServiceError):
    """The requested status equals the order's current status."""
    status_code = 400


class PersistenceError(OrderServiceError):
    status_code = 500


class PaymentRequestError(OrderServiceError):
    """
    The payment service could not create a session.

    When raised after the order was persisted, `order_id` holds the id of the
    order that already exists and can be used to retry the session request.
    """
    status_code = 400

    def __init__(self, message: str, order_id: Optional[str] = None):
        super().__init__(message)
        self.order_id = order_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.order_id:
            data["orderId"] = self.order_id
        return data
