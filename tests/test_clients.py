"""
Tests for the remote clients — product validation (gRPC), payment sessions (REST)
and the payment event listener (RabbitMQ).
"""
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import grpc
import httpx
import pytest

from order_service.clients import (
    CREATE_PAYMENT_SESSION_PATH,
    VALIDATE_PRODUCTS_METHOD,
    PaymentEventListener,
    PaymentSessionClient,
    ProductValidatorClient,
    decode_json,
    encode_json,
)
from order_service.errors import PaymentRequestError, ProductValidationError
from order_service.models import PaymentSessionItem, PaymentSessionRequest


class FakeRpcError(grpc.RpcError):
    def __init__(self, code, details):
        self._code = code
        self._details = details

    def code(self):
        return self._code

    def details(self):
        return self._details


def grpc_channel(reply=None, error=None):
    """MagicMock channel whose ValidateProducts callable returns `reply` or raises `error`."""
    stub = MagicMock(return_value=reply, side_effect=error)
    channel = MagicMock()
    channel.unary_unary.return_value = stub
    return channel, stub


class TestProductValidatorClient:

    @pytest.mark.unit
    def test_returns_validated_products(self):
        channel, stub = grpc_channel(reply=decode_json(b'[{"id": "P1", "name": "A", "price": 10.50}]'))
        client = ProductValidatorClient(channel=channel, timeout=2)

        products = client.validate(["P1"])

        assert products[0].id == "P1"
        assert products[0].price == Decimal("10.50")
        stub.assert_called_once_with(["P1"], timeout=2)
        assert channel.unary_unary.call_args.args[0] == VALIDATE_PRODUCTS_METHOD

    @pytest.mark.unit
    def test_ids_sent_as_given(self):
        channel, stub = grpc_channel(reply=[])
        ProductValidatorClient(channel=channel).validate(("P1", "P1"))
        assert stub.call_args.args[0] == ["P1", "P1"]

    @pytest.mark.unit
    def test_rpc_error_becomes_validation_error(self):
        error = FakeRpcError(grpc.StatusCode.INVALID_ARGUMENT, "Some products were not found: ['P9']")
        channel, _ = grpc_channel(error=error)

        with pytest.raises(ProductValidationError, match="P9") as exc:
            ProductValidatorClient(channel=channel).validate(["P9"])
        assert exc.value.status_code == 400

    @pytest.mark.unit
    def test_deadline_becomes_validation_error(self):
        channel, _ = grpc_channel(error=FakeRpcError(grpc.StatusCode.DEADLINE_EXCEEDED, "Deadline Exceeded"))

        with pytest.raises(ProductValidationError, match="Deadline"):
            ProductValidatorClient(channel=channel).validate(["P1"])

    @pytest.mark.unit
    def test_malformed_reply(self):
        channel, _ = grpc_channel(reply=[{"id": "P1"}])

        with pytest.raises(ProductValidationError, match="Malformed"):
            ProductValidatorClient(channel=channel).validate(["P1"])

    @pytest.mark.unit
    def test_json_codec_keeps_decimals(self):
        assert decode_json(encode_json([{"price": Decimal("0.10")}])) == [{"price": "0.10"}]
        assert decode_json(b'{"price": 0.1}') == {"price": Decimal("0.1")}


def session_request():
    return PaymentSessionRequest(
        order_id="order-1",
        currency="usd",
        items=[PaymentSessionItem(name="A", price=Decimal("10.00"), quantity=2)],
    )


def payment_client(handler):
    return PaymentSessionClient(base_url="http://payments", transport=httpx.MockTransport(handler))


class TestPaymentSessionClient:

    @pytest.mark.unit
    def test_posts_camel_case_payload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "cs_1"})

        session = payment_client(handler).create_payment_session(session_request())

        assert session == {"id": "cs_1"}
        assert seen["path"] == CREATE_PAYMENT_SESSION_PATH
        assert seen["body"] == {
            "orderId": "order-1",
            "currency": "usd",
            "items": [{"name": "A", "price": "10.00", "quantity": 2}],
        }

    @pytest.mark.unit
    def test_http_error_uses_upstream_message(self):
        client = payment_client(lambda request: httpx.Response(400, json={"message": "Unsupported currency"}))

        with pytest.raises(PaymentRequestError, match="Unsupported currency") as exc:
            client.create_payment_session(session_request())
        assert exc.value.status_code == 400

    @pytest.mark.unit
    def test_server_error_with_plain_body(self):
        client = payment_client(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(PaymentRequestError, match="bad gateway"):
            client.create_payment_session(session_request())

    @pytest.mark.unit
    @pytest.mark.parametrize("reply", ["cs_opaque_handle", ["cs_1"], None])
    def test_non_object_reply_is_rejected(self, reply):
        client = payment_client(lambda request: httpx.Response(200, json=reply))

        with pytest.raises(PaymentRequestError, match="invalid response"):
            client.create_payment_session(session_request())

    @pytest.mark.unit
    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PaymentRequestError, match="unreachable"):
            payment_client(handler).create_payment_session(session_request())


class TestPaymentEventListener:

    @pytest.mark.unit
    def test_valid_event_is_handled_and_acked(self):
        handler = MagicMock()
        channel, method = MagicMock(), MagicMock(delivery_tag=7)
        body = json.dumps({"orderId": "o1", "chargeId": "ch_1", "receiptUrl": "https://r/1"}).encode()

        PaymentEventListener(handler).on_message(channel, method, None, body)

        event = handler.call_args.args[0]
        assert (event.order_id, event.charge_id, event.receipt_url) == ("o1", "ch_1", "https://r/1")
        channel.basic_ack.assert_called_once_with(delivery_tag=7)

    @pytest.mark.unit
    def test_stripe_payment_id_alias(self):
        handler = MagicMock()
        body = json.dumps({"orderId": "o1", "stripePaymentId": "ch_9", "receiptUrl": "u"}).encode()

        PaymentEventListener(handler).on_message(MagicMock(), MagicMock(), None, body)

        assert handler.call_args.args[0].charge_id == "ch_9"

    @pytest.mark.unit
    def test_invalid_message_is_rejected(self):
        handler = MagicMock()
        channel, method = MagicMock(), MagicMock(delivery_tag=3)

        PaymentEventListener(handler).on_message(channel, method, None, b"not json")

        handler.assert_not_called()
        channel.basic_nack.assert_called_once_with(delivery_tag=3, requeue=False)

    @pytest.mark.unit
    def test_handler_failure_is_swallowed_and_acked(self):
        handler = MagicMock(side_effect=RuntimeError("db down"))
        channel, method = MagicMock(), MagicMock(delivery_tag=5)
        body = json.dumps({"orderId": "o1", "chargeId": "ch_1", "receiptUrl": "u"}).encode()

        PaymentEventListener(handler).on_message(channel, method, None, body)

        channel.basic_ack.assert_called_once_with(delivery_tag=5)

    @pytest.mark.unit
    def test_connection_closed_before_restart(self):
        connection = MagicMock(is_open=True)
        connection.channel.return_value.start_consuming.side_effect = RuntimeError("channel died")
        listener = PaymentEventListener(MagicMock(), queue="payment.succeeded", reconnect_delay=0)

        with patch("order_service.clients.pika.BlockingConnection", return_value=connection), \
             patch("order_service.clients.time.sleep", side_effect=StopListening):
            with pytest.raises(StopListening):
                listener.run()

        connection.close.assert_called_once()
        assert listener.connection is None


class StopListening(Exception):
    pass
