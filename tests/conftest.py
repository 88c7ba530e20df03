from decimal import Decimal
from itertools import count

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.core.actors import Actor
from modules.core.transactions import DjangoTransactionCoordinator
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import (
    ProductDjangoRepository,
    StockDjangoRepository,
)

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users and actors
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer():
    return User.objects.create_user(username="alice", password="testpass123")


@pytest.fixture()
def other_customer():
    return User.objects.create_user(username="bob", password="testpass123")


@pytest.fixture()
def admin_user():
    return User.objects.create_user(
        username="admin", password="testpass123", is_staff=True
    )


@pytest.fixture()
def customer_actor(customer):
    return Actor.from_user(customer)


@pytest.fixture()
def other_actor(other_customer):
    return Actor.from_user(other_customer)


@pytest.fixture()
def admin_actor(admin_user):
    return Actor.from_user(admin_user)


@pytest.fixture()
def client_for():
    """Build an APIClient force-authenticated as the given user."""

    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client


# ---------------------------------------------------------------------------
# Catalog and service
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    sequence = count(1)

    def _make(
        name: str = "Product",
        price: str = "10.00",
        stock: int = 10,
        status: str = ProductStatus.ACTIVE,
    ) -> Product:
        return Product.objects.create(
            sku=f"SKU-{next(sequence):04d}",
            name=name,
            price=Decimal(price),
            stock_quantity=stock,
            status=status,
        )

    return _make


@pytest.fixture()
def order_service():
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        stock_repository=StockDjangoRepository(),
        transaction_coordinator=DjangoTransactionCoordinator(),
    )


@pytest.fixture()
def place_order(order_service):
    """Create an order through the service: ``place_order(actor, (product, qty), ...)``."""

    def _place(actor, *lines, idempotency_key=None):
        dto = CreateOrderDTO(
            items=[
                CreateOrderItemDTO(product_id=product.id, quantity=quantity)
                for product, quantity in lines
            ],
            idempotency_key=idempotency_key,
        )
        return order_service.create_order(actor, dto)

    return _place
