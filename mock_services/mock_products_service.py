"""
mock_products_service.py — Mock Implementation of the Product Service (gRPC)

A simulated product service for local runs of the order service. It serves the
`ValidateProducts` method with JSON-encoded messages, exactly as the real
service does, so the order service can be exercised end to end.

Simulated scenarios:
    • All ids known → one {id, name, price} record per requested id
    • Any unknown id → INVALID_ARGUMENT with the list of missing ids
    • Id "SLOW" → the reply is delayed past the client deadline

Port:
    Default: 50051 (gRPC)
"""

import logging
import time
from concurrent import futures

import grpc

from order_service.clients import PRODUCTS_SERVICE_NAME, decode_json, encode_json

logging.basicConfig(level=logging.INFO)

CATALOG = {
    "P1": {"id": "P1", "name": "Keyboard", "price": "49.90"},
    "P2": {"id": "P2", "name": "Mouse", "price": "19.99"},
    "P3": {"id": "P3", "name": "Monitor", "price": "229.00"},
    "SLOW": {"id": "SLOW", "name": "Slow product", "price": "1.00"},
}


def validate_products(request, context):
    """
    Resolves product ids against the in-memory catalog.

    Args:
        request (list[str]): Requested product ids (decoded JSON array).
        context (grpc.ServicerContext): The gRPC context, used to abort on errors.

    Returns:
        list[dict]: One record per requested id, in request order.
    """
    logging.info(f"[PRODUCTS] Validation request for ids: {request}")

    missing = sorted({product_id for product_id in request if product_id not in CATALOG})
    if missing:
        logging.warning(f"[PRODUCTS] Unknown products: {missing}")
        context.abort(grpc.StatusCode.INVALID_ARGUMENT, f"Some products were not found: {missing}")

    if "SLOW" in request:
        logging.info("[PRODUCTS] Simulating slow reply...")
        time.sleep(10)

    return [CATALOG[product_id] for product_id in request]


def serve(port: int = 50051):
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=10))
    handler = grpc.method_handlers_generic_handler(PRODUCTS_SERVICE_NAME, {
        "ValidateProducts": grpc.unary_unary_rpc_method_handler(
            validate_products,
            request_deserializer=decode_json,
            response_serializer=encode_json,
        ),
    })
    server.add_generic_rpc_handlers((handler,))
    server.add_insecure_port(f'[::]:{port}')
    logging.info(f"Mock Product Service (gRPC) starting on port {port}...")
    server.start()
    server.wait_for_termination()


if __name__ == '__main__':
    serve()
