"""
This module provides communication clients for the external systems the order service depends on:
- Product Service (gRPC) validates product ids and returns current prices and names
- Payment Service (REST API) opens payment sessions for new orders
- Payment events (RabbitMQ) delivers the fire-and-forget `payment.succeeded` signal
Each class encapsulates its protocol logic, error handling, and connection management.
Library errors are translated into the service's own error classes here.
"""

import json
import logging
import time
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

import grpc
import httpx
import pika
from pydantic import ValidationError

from .config import settings
from .errors import PaymentRequestError, ProductValidationError
from .models import PaidOrderEvent, PaymentSessionRequest, ValidatedProduct

# The product service speaks JSON over gRPC, so no generated stubs are needed.
PRODUCTS_SERVICE_NAME = "products.ProductsService"
VALIDATE_PRODUCTS_METHOD = f"/{PRODUCTS_SERVICE_NAME}/ValidateProducts"
CREATE_PAYMENT_SESSION_PATH = "/payments/create-payment-session"

log = logging.getLogger(__name__)


def encode_json(payload) -> bytes:
    return json.dumps(payload, default=str).encode("utf-8")


def decode_json(data: bytes):
    return json.loads(data, parse_float=Decimal)


# --- Product Validator Client (gRPC) ---
class ProductValidatorClient:
    """
    Client for the Product Service (gRPC).
    Resolves product ids into authoritative id/name/price records.
    """
    def __init__(self, target: Optional[str] = None, timeout: Optional[float] = None,
                 channel: Optional[grpc.Channel] = None):
        """
        Opens the gRPC channel unless one is given.
        Args:
            target (str): host:port of the product service.
            timeout (float): Deadline in seconds for every call.
            channel (grpc.Channel): Pre-built channel, mainly for tests.
        """
        self.timeout = timeout or settings.remote_timeout_seconds
        self.channel = channel or grpc.insecure_channel(target or settings.products_service_url)
        self._validate = self.channel.unary_unary(
            VALIDATE_PRODUCTS_METHOD,
            request_serializer=encode_json,
            response_deserializer=decode_json,
        )

    def close(self):
        self.channel.close()

    def validate(self, product_ids: Sequence[str]) -> List[ValidatedProduct]:
        """
        Sends the ids to the product service, as given.
        Args:
            product_ids (Sequence[str]): Ids to resolve.
        Returns:
            List[ValidatedProduct]: One record per id known to the product service.
        Raises:
            ProductValidationError: On any gRPC failure (unknown ids, timeout, unreachable)
                or when the reply cannot be parsed.
        """
        try:
            reply = self._validate(list(product_ids), timeout=self.timeout)
        except grpc.RpcError as e:
            log.error(f"Product validation failed: {e.code()} - {e.details()}")
            raise ProductValidationError(e.details() or str(e.code())) from e

        try:
            return [ValidatedProduct.model_validate(record) for record in reply]
        except (TypeError, ValidationError) as e:
            log.error(f"Malformed reply from product service: {e}")
            raise ProductValidationError(f"Malformed reply from product service: {e}") from e


# --- Payment Session Client (REST) ---
class PaymentSessionClient:
    """
    Client for the Payment Service (REST API).
    Requests checkout sessions; there is no retry at this layer.
    """
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 read_timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        """
        Initializes the HTTP client with proper timeout configuration.
        """
        timeout_config = httpx.Timeout(
            timeout or settings.remote_timeout_seconds,
            read=read_timeout or settings.payment_read_timeout_seconds,
        )
        self.client = httpx.Client(
            base_url=base_url or settings.payment_service_url,
            timeout=timeout_config,
            transport=transport,
        )

    def close(self):
        self.client.close()

    def create_payment_session(self, request: PaymentSessionRequest) -> dict:
        """
        Creates a payment session for an order.
        Args:
            request (PaymentSessionRequest): Order id, currency and line summaries.
        Returns:
            dict: The session object returned by the payment service.
        Raises:
            PaymentRequestError: On timeouts, connection errors, 4xx/5xx responses,
                or a reply that is not a JSON object.
        """
        order_id = request.order_id
        # Prices go out as decimal strings ("10.00"), never as floats.
        payload = request.model_dump(mode="json", by_alias=True)

        try:
            response = self.client.post(CREATE_PAYMENT_SESSION_PATH, json=payload)
            response.raise_for_status()
            session = response.json()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            log.error(f"[Order: {order_id}] Payment service returned HTTP {e.response.status_code}: {message}")
            raise PaymentRequestError(message) from e
        except httpx.RequestError as e:
            log.error(f"[Order: {order_id}] Payment service unreachable: {e!r}")
            raise PaymentRequestError(f"Payment service unreachable: {e}") from e
        except ValueError as e:
            log.error(f"[Order: {order_id}] Payment service sent an invalid body: {e}")
            raise PaymentRequestError("Payment service sent an invalid response") from e

        if not isinstance(session, dict):
            log.error(f"[Order: {order_id}] Payment service reply is not a JSON object: {session!r}")
            raise PaymentRequestError("Payment service sent an invalid response")
        return session


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        detail = body.get("message") or body.get("detail")
        if detail:
            return str(detail)
    return str(body)


# --- Payment Event Listener (MQ Consumer) ---
class PaymentEventListener:
    """
    Consumes `payment.succeeded` events from RabbitMQ and hands each one to `handler`.
    The signal is fire-and-forget: handler failures are logged and the message is acked.
    Malformed messages are rejected without requeue (dead-lettered if configured).
    """
    def __init__(self, handler: Callable[[PaidOrderEvent], None], queue: Optional[str] = None,
                 reconnect_delay: float = 10):
        self.handler = handler
        self.queue = queue or settings.payment_succeeded_queue
        self.reconnect_delay = reconnect_delay
        self.connection = None

    @staticmethod
    def connection_parameters() -> pika.ConnectionParameters:
        credentials = pika.PlainCredentials(settings.rabbitmq_user, settings.rabbitmq_password)
        return pika.ConnectionParameters(host=settings.rabbitmq_host, credentials=credentials, heartbeat=60)

    def on_message(self, ch, method, properties, body):
        try:
            event = PaidOrderEvent.model_validate_json(body)
        except ValidationError as e:
            log.error(f"[PAYMENT-EVENT] Invalid message received: {body!r} ({e.error_count()} errors)")
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            return

        log.info(f"[PAYMENT-EVENT][Order: {event.order_id}] payment.succeeded received.")
        try:
            self.handler(event)
        except Exception as e:
            log.error(f"[PAYMENT-EVENT][Order: {event.order_id}] Handler failed: {e}", exc_info=True)
        ch.basic_ack(delivery_tag=method.delivery_tag)

    def run(self):
        """
        Blocking consume loop. Reconnects after `reconnect_delay` seconds on connection loss.
        Meant to run in a daemon thread.
        """
        log.info("Payment event listener starting...")
        while True:
            try:
                self.connection = pika.BlockingConnection(self.connection_parameters())
                channel = self.connection.channel()
                channel.queue_declare(queue=self.queue, durable=True)
                channel.basic_consume(queue=self.queue, on_message_callback=self.on_message)
                log.info(f"[PAYMENT-EVENT] Listening on queue '{self.queue}'.")
                channel.start_consuming()
            except pika.exceptions.AMQPConnectionError:
                log.warning(f"Payment listener: lost connection to RabbitMQ. Reconnecting in {self.reconnect_delay}s...")
            except Exception as e:
                log.error(f"Payment listener: unexpected error {e}. Restarting in {self.reconnect_delay}s.")
            finally:
                self.close()
            time.sleep(self.reconnect_delay)

    def close(self):
        if self.connection is not None and self.connection.is_open:
            try:
                self.connection.close()
            except pika.exceptions.AMQPError as e:
                log.warning(f"Payment listener: error while closing connection: {e}")
        self.connection = None
