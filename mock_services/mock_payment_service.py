"""
mock_payment_service.py — Mock Implementation of the Payment Service (REST API)

A simulated payment service for local runs of the order service.

Simulation Scenarios:
    • Successful session creation
    • Rejected session (HTTP 400) when the currency is not supported
    • Payment completion via webhook, published to RabbitMQ as `payment.succeeded`

Endpoints:
    POST /payments/create-payment-session — Opens a checkout session.
    POST /payments/webhook                — Simulates the provider confirming a payment.

Port:
    Default: 3003 (HTTP)
"""

import json
import logging
import os
import uuid
from typing import List

import pika
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Mock Payment Service")
logging.basicConfig(level=logging.INFO)

RABBITMQ_HOST = os.environ.get("RABBITMQ_HOST", "localhost")
RABBITMQ_USER = os.environ.get("RABBITMQ_USER", "guest")
RABBITMQ_PASSWORD = os.environ.get("RABBITMQ_PASSWORD", "guest")
PAYMENT_SUCCEEDED_QUEUE = os.environ.get("PAYMENT_SUCCEEDED_QUEUE", "payment.succeeded")
SUPPORTED_CURRENCIES = {"usd", "eur"}


class SessionItem(BaseModel):
    name: str
    price: str
    quantity: int


class PaymentSessionRequest(BaseModel):
    orderId: str
    currency: str
    items: List[SessionItem]


class PaymentWebhook(BaseModel):
    orderId: str
    receiptUrl: str = "https://pay.example.com/receipts/demo"


@app.post("/payments/create-payment-session")
def create_payment_session(request: PaymentSessionRequest):
    """
    Opens a checkout session for an order.

    Raises:
        HTTPException(400): If the currency is not supported.
    """
    logging.info(f"[PS] Session request for order {request.orderId} ({len(request.items)} items)")

    if request.currency not in SUPPORTED_CURRENCIES:
        logging.warning(f"[PS] Currency {request.currency} rejected.")
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {request.currency}")

    session_id = f"cs_{uuid.uuid4().hex}"
    return {
        "id": session_id,
        "orderId": request.orderId,
        "url": f"https://pay.example.com/checkout/{session_id}",
        "successUrl": "http://localhost:3000/payments/success",
        "cancelUrl": "http://localhost:3000/payments/cancel",
    }


@app.post("/payments/webhook", status_code=202)
def payment_webhook(event: PaymentWebhook):
    """
    Publishes a `payment.succeeded` message as the real provider webhook would.
    """
    message = {
        "orderId": event.orderId,
        "chargeId": f"ch_{uuid.uuid4().hex}",
        "receiptUrl": event.receiptUrl,
    }
    credentials = pika.PlainCredentials(RABBITMQ_USER, RABBITMQ_PASSWORD)
    connection = pika.BlockingConnection(pika.ConnectionParameters(host=RABBITMQ_HOST, credentials=credentials))
    try:
        channel = connection.channel()
        channel.queue_declare(queue=PAYMENT_SUCCEEDED_QUEUE, durable=True)
        channel.basic_publish(
            exchange='',
            routing_key=PAYMENT_SUCCEEDED_QUEUE,
            body=json.dumps(message),
            properties=pika.BasicProperties(delivery_mode=2)
        )
    finally:
        connection.close()
    logging.info(f"[PS] payment.succeeded published for order {event.orderId}")
    return message


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3003)
