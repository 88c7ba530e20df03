"""Unit tests for OrderDjangoRepository."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.core.transactions import DjangoTransactionCoordinator
from modules.orders.constants import OrderStatus
from modules.orders.events import OrderPaid
from modules.orders.repositories.django_repository import OrderDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def repo():
    return OrderDjangoRepository()


@pytest.fixture()
def run():
    return DjangoTransactionCoordinator().run_atomic


@pytest.fixture()
def order(repo, run, customer, make_product):
    keyboard = make_product(name="Keyboard", price="50.00")
    mouse = make_product(name="Mouse", price="20.00")
    data = {
        "owner_id": customer.pk,
        "total_amount": Decimal("140.00"),
        "idempotency_key": "key-1",
        "items": [
            {"product_id": keyboard.id, "quantity": 2, "unit_price": keyboard.price},
            {"product_id": mouse.id, "quantity": 2, "unit_price": mouse.price},
        ],
    }
    return run(lambda scope: repo.create(data, scope))


class TestCreateAndRead:
    def test_create_persists_items_with_snapshots(self, repo, order):
        loaded = repo.get_by_id(str(order.id))

        assert loaded.total_amount == Decimal("140.00")
        assert loaded.status == OrderStatus.CREATED
        assert sorted(item.subtotal for item in loaded.items.all()) == [
            Decimal("40.00"),
            Decimal("100.00"),
        ]

    def test_get_by_id_unknown_or_malformed(self, repo):
        assert repo.get_by_id(str(uuid4())) is None
        assert repo.get_by_id("not-a-uuid") is None

    def test_get_by_idempotency_key(self, repo, order):
        assert repo.get_by_idempotency_key("key-1") == order
        assert repo.get_by_idempotency_key("other") is None

    def test_list_filters_by_owner(self, repo, order, customer, other_customer):
        assert list(repo.list({"owner_id": customer.pk})) == [order]
        assert list(repo.list({"owner_id": other_customer.pk})) == []

    def test_get_by_id_avoids_n_plus_one(self, repo, order, django_assert_max_num_queries):
        with django_assert_max_num_queries(4):
            loaded = repo.get_by_id(str(order.id))
            [item.product.name for item in loaded.items.all()]
            list(loaded.status_history.all())
            loaded.owner.username


class TestUpdateStatus:
    def test_compare_and_set_succeeds_on_expected_status(self, repo, run, order):
        updated = run(
            lambda scope: repo.update_status(
                order.id, OrderStatus.PAID, scope, expected_status=OrderStatus.CREATED
            )
        )
        assert updated.status == OrderStatus.PAID

    def test_compare_and_set_misses_on_stale_status(self, repo, run, order):
        result = run(
            lambda scope: repo.update_status(
                order.id, OrderStatus.CANCELLED, scope, expected_status=OrderStatus.PAID
            )
        )
        assert result is None
        assert repo.get_by_id(str(order.id)).status == OrderStatus.CREATED

    def test_unknown_order_returns_none(self, repo, run):
        assert run(lambda scope: repo.update_status(uuid4(), OrderStatus.PAID, scope)) is None


class TestHistoryAndEvents:
    def test_add_history(self, repo, run, order):
        run(
            lambda scope: repo.add_history(
                order.id,
                OrderStatus.PAID,
                scope,
                old_status=OrderStatus.CREATED,
                actor_id="9",
                notes="paid at till",
            )
        )
        history = list(repo.get_by_id(str(order.id)).status_history.all())
        assert [(h.old_status, h.new_status, h.actor_id) for h in history] == [
            (OrderStatus.CREATED, OrderStatus.PAID, "9")
        ]

    def test_save_events_writes_outbox_and_clears(self, repo, run, order):
        order.add_domain_event(
            OrderPaid(aggregate_id=order.id, actor_id="9", total_amount="140.00")
        )

        saved = run(lambda scope: repo.save_events(order, scope))

        assert saved == 1
        assert order.domain_events == []
        row = OutboxEvent.objects.get(aggregate_id=str(order.id))
        assert row.event_type == "OrderPaid"
        assert row.topic == "orders"
        assert row.status == EventStatus.PENDING
        assert row.payload["total_amount"] == "140.00"
        assert row.payload["aggregate_id"] == str(order.id)
