"""
Shared fixtures for order service tests.

Provides an in-memory SQLite repository, fake product/payment collaborators,
a wired OrderWorkflow and a FastAPI test client.
"""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from order_service.errors import PaymentRequestError, ProductValidationError
from order_service.main import app, get_workflow
from order_service.models import ValidatedProduct
from order_service.repository import OrderRepository
from order_service.workflow import OrderWorkflow


class FakeValidator:
    """Product service stand-in. Unknown ids are silently left out of the reply."""

    def __init__(self, catalog):
        self.catalog = {p.id: p for p in catalog}
        self.calls = []
        self.error = None

    def validate(self, product_ids):
        self.calls.append(list(product_ids))
        if self.error is not None:
            raise self.error
        return [self.catalog[pid] for pid in product_ids if pid in self.catalog]

    def close(self):
        pass


class FakePayments:
    def __init__(self):
        self.requests = []
        self.fail = False

    def create_payment_session(self, request):
        self.requests.append(request)
        if self.fail:
            raise PaymentRequestError("Payment service unreachable")
        return {"id": f"cs_{len(self.requests)}", "orderId": request.order_id}

    def close(self):
        pass


@pytest.fixture
def catalog():
    return [
        ValidatedProduct(id="P1", name="A", price=Decimal("10")),
        ValidatedProduct(id="P2", name="B", price=Decimal("5")),
        ValidatedProduct(id="P3", name="C", price=Decimal("0.10")),
    ]


@pytest.fixture
def repository():
    repo = OrderRepository(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    repo.connect()
    yield repo
    repo.disconnect()


@pytest.fixture
def validator(catalog):
    return FakeValidator(catalog)


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def workflow(repository, validator, payments):
    return OrderWorkflow(repository=repository, validator=validator, payments=payments, currency="usd")


@pytest.fixture
def api_client(workflow):
    """
    Test client without startup events, so no real database or RabbitMQ
    connection is opened.
    """
    app.dependency_overrides[get_workflow] = lambda: workflow
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def validation_error():
    return ProductValidationError("Some products were not found: ['NOPE']")
