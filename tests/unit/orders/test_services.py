"""Unit tests for OrderService with stubbed collaborators.

Repositories are ``MagicMock`` objects constrained to their interfaces and
the coordinator runs the unit of work inline, so these tests pin down the
orchestration: what is validated before any write, which writes happen in
the scope, and which outcome is reported.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, call
from uuid import uuid4

import pytest
from django.db import DatabaseError, IntegrityError

from modules.core.actors import Actor
from modules.core.exceptions import ConflictError, InternalError, ValidationError
from modules.core.transactions import ITransactionCoordinator, TransactionScope
from modules.orders.constants import (
    STOCK_HOLDING_STATES,
    VALID_TRANSITIONS,
    OrderOutcome,
    OrderStatus,
)
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderPaid,
    PaidOrderCancelled,
)
from modules.orders.exceptions import (
    DuplicateOrderItem,
    EmptyOrder,
    IdempotencyKeyConflict,
    InsufficientStock,
    InvalidIdempotencyKey,
    InvalidOrderStatus,
    InvalidQuantity,
    OrderAccessDenied,
    OrderNotFound,
    ProductsNotFound,
    StaleOrderState,
)
from modules.orders.repositories.interfaces import IOrderRepository
from modules.orders.services import OrderService
from modules.products.repositories.interfaces import IProductRepository, IStockRepository

pytestmark = pytest.mark.unit

OWNER = Actor("1")
STRANGER = Actor("2")
ADMIN = Actor("99", is_elevated=True)


class InlineCoordinator(ITransactionCoordinator):
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error

    def run_atomic(self, work):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return work(TransactionScope())


def _product(name="Widget", price="500.00", stock=10):
    return SimpleNamespace(
        id=uuid4(), name=name, price=Decimal(price), stock_quantity=stock
    )


def _order(status=OrderStatus.CREATED, owner_id="1", items=()):
    order = MagicMock(name="order")
    order.id = uuid4()
    order.status = status
    order.owner_id = owner_id
    order.total_amount = Decimal("30.00")
    order.holds_stock = status in STOCK_HOLDING_STATES
    order.can_transition_to.side_effect = lambda new: new in VALID_TRANSITIONS[status]
    order.items.all.return_value = list(items)
    return order


def _dto(*lines, key=None):
    return CreateOrderDTO(
        items=[CreateOrderItemDTO(product_id=pid, quantity=qty) for pid, qty in lines],
        idempotency_key=key,
    )


def _events(mock_order):
    return [c.args[0] for c in mock_order.add_domain_event.call_args_list]


@pytest.fixture()
def order_repo():
    repo = MagicMock(spec=IOrderRepository)
    repo.get_by_idempotency_key.return_value = None
    return repo


@pytest.fixture()
def product_repo():
    return MagicMock(spec=IProductRepository)


@pytest.fixture()
def stock_repo():
    return MagicMock(spec=IStockRepository)


@pytest.fixture()
def coordinator():
    return InlineCoordinator()


@pytest.fixture()
def service(order_repo, product_repo, stock_repo, coordinator):
    return OrderService(order_repo, product_repo, stock_repo, coordinator)


# ---------------------------------------------------------------------------
# create_order
# ---------------------------------------------------------------------------


class TestCreateOrderValidation:
    def test_empty_order(self, service, coordinator):
        with pytest.raises(EmptyOrder):
            service.create_order(OWNER, _dto())
        assert coordinator.calls == 0

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity(self, service, product_repo, quantity):
        with pytest.raises(InvalidQuantity) as exc_info:
            service.create_order(OWNER, _dto((uuid4(), quantity)))
        assert exc_info.value.meta["quantity"] == quantity
        product_repo.get_many.assert_not_called()

    def test_duplicate_products_rejected(self, service):
        pid = uuid4()
        with pytest.raises(DuplicateOrderItem) as exc_info:
            service.create_order(OWNER, _dto((pid, 1), (pid, 2)))
        assert exc_info.value.meta["product_ids"] == [str(pid)]

    def test_overlong_idempotency_key_rejected(self, service, order_repo, coordinator):
        with pytest.raises(InvalidIdempotencyKey) as exc_info:
            service.create_order(OWNER, _dto((uuid4(), 1), key="x" * 256))

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.meta == {"max_length": 255}
        order_repo.get_by_idempotency_key.assert_not_called()
        assert coordinator.calls == 0

    def test_unknown_product_named(self, service, product_repo, coordinator):
        known = _product()
        missing = uuid4()
        product_repo.get_many.return_value = [known]

        with pytest.raises(ProductsNotFound) as exc_info:
            service.create_order(OWNER, _dto((known.id, 1), (missing, 1)))

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.missing_ids == [str(missing)]
        assert str(missing) in exc_info.value.detail
        assert coordinator.calls == 0

    def test_insufficient_stock_checked_before_any_write(
        self, service, product_repo, stock_repo, coordinator
    ):
        plenty = _product(name="Plenty", stock=100)
        scarce = _product(name="Scarce", stock=2)
        product_repo.get_many.return_value = [plenty, scarce]

        with pytest.raises(InsufficientStock) as exc_info:
            service.create_order(OWNER, _dto((plenty.id, 1), (scarce.id, 5)))

        assert exc_info.value.meta == {
            "product_id": str(scarce.id),
            "available": 2,
            "requested": 5,
        }
        assert '"Scarce"' in exc_info.value.detail
        assert coordinator.calls == 0
        stock_repo.decrement.assert_not_called()


class TestCreateOrderSuccess:
    def test_persists_order_and_decrements_stock(
        self, service, order_repo, product_repo, stock_repo
    ):
        a = _product(price="500.00")
        b = _product(price="2.50")
        product_repo.get_many.return_value = [a, b]
        created = MagicMock(id=uuid4())
        reloaded = MagicMock(name="reloaded")
        order_repo.create.return_value = created
        order_repo.get_by_id.return_value = reloaded

        result = service.create_order(OWNER, _dto((a.id, 3), (b.id, 4), key="k-1"))

        assert result.outcome == OrderOutcome.CREATED
        assert result.message == "Order created successfully"
        assert result.changed
        assert result.order is reloaded

        data, scope = order_repo.create.call_args.args
        assert data["owner_id"] == "1"
        assert data["total_amount"] == Decimal("1510.00")
        assert data["idempotency_key"] == "k-1"
        assert [line["unit_price"] for line in data["items"]] == [a.price, b.price]
        assert isinstance(scope, TransactionScope)

        expected = sorted([(a.id, 3), (b.id, 4)], key=lambda pair: str(pair[0]))
        assert stock_repo.decrement.call_args_list == [
            call(pid, qty, scope) for pid, qty in expected
        ]
        order_repo.add_history.assert_called_once()
        assert order_repo.add_history.call_args.kwargs["new_status"] == OrderStatus.CREATED

        (event,) = _events(created)
        assert isinstance(event, OrderCreated)
        assert event.total_amount == "1510.00"
        assert event.item_count == 2
        order_repo.save_events.assert_called_once_with(created, scope)

    def test_idempotency_key_replays_existing_order(
        self, service, order_repo, product_repo, coordinator
    ):
        existing = _order(owner_id="1")
        order_repo.get_by_idempotency_key.return_value = existing

        result = service.create_order(OWNER, _dto((uuid4(), 1), key="k-1"))

        assert result.order is existing
        assert result.outcome == OrderOutcome.ALREADY_CREATED
        assert not result.changed
        product_repo.get_many.assert_not_called()
        assert coordinator.calls == 0

    def test_idempotency_key_of_other_actor_conflicts(self, service, order_repo):
        order_repo.get_by_idempotency_key.return_value = _order(owner_id="1")

        with pytest.raises(IdempotencyKeyConflict):
            service.create_order(STRANGER, _dto((uuid4(), 1), key="k-1"))


class TestCreateOrderFailures:
    def test_storage_failure_becomes_internal_error(
        self, order_repo, product_repo, stock_repo
    ):
        product = _product()
        product_repo.get_many.return_value = [product]
        failure = DatabaseError("connection lost")
        service = OrderService(
            order_repo, product_repo, stock_repo, InlineCoordinator(error=failure)
        )

        with pytest.raises(InternalError) as exc_info:
            service.create_order(OWNER, _dto((product.id, 1)))

        assert exc_info.value.__cause__ is failure

    def test_lost_idempotency_race_replays_winner(
        self, order_repo, product_repo, stock_repo
    ):
        product = _product()
        product_repo.get_many.return_value = [product]
        winner = _order(owner_id="1")
        order_repo.get_by_idempotency_key.side_effect = [None, winner]
        service = OrderService(
            order_repo,
            product_repo,
            stock_repo,
            InlineCoordinator(error=IntegrityError("unique idempotency_key")),
        )

        result = service.create_order(OWNER, _dto((product.id, 1), key="k-1"))

        assert result.order is winner
        assert result.outcome == OrderOutcome.ALREADY_CREATED

    def test_decrement_failure_propagates_unchanged(
        self, service, order_repo, product_repo, stock_repo
    ):
        product = _product(stock=5)
        product_repo.get_many.return_value = [product]
        order_repo.create.return_value = MagicMock(id=uuid4())
        raced = InsufficientStock(product.id, available=0, requested=5)
        stock_repo.decrement.side_effect = raced

        with pytest.raises(InsufficientStock) as exc_info:
            service.create_order(OWNER, _dto((product.id, 5)))

        assert exc_info.value is raced
        order_repo.save_events.assert_not_called()


# ---------------------------------------------------------------------------
# pay_order
# ---------------------------------------------------------------------------


class TestPayOrder:
    def test_pay_created_order(self, service, order_repo, stock_repo):
        order = _order(OrderStatus.CREATED)
        updated = MagicMock(name="updated")
        order_repo.get_by_id.return_value = order
        order_repo.update_status.return_value = updated

        result = service.pay_order(OWNER, order.id)

        assert result.outcome == OrderOutcome.PAID
        assert result.message == "Payment successful"
        scope = order_repo.update_status.call_args.args[2]
        order_repo.update_status.assert_called_once_with(
            order.id, OrderStatus.PAID, scope, expected_status=OrderStatus.CREATED
        )
        assert [type(e) for e in _events(updated)] == [OrderPaid]
        stock_repo.decrement.assert_not_called()
        stock_repo.increment.assert_not_called()

    def test_pay_is_idempotent(self, service, order_repo, coordinator):
        order_repo.get_by_id.return_value = _order(OrderStatus.PAID)

        result = service.pay_order(OWNER, uuid4())

        assert result.outcome == OrderOutcome.ALREADY_PAID
        assert result.message == "Order is already paid"
        assert coordinator.calls == 0

    def test_pay_cancelled_order_always_conflicts(self, service, order_repo, coordinator):
        order_repo.get_by_id.return_value = _order(OrderStatus.CANCELLED)

        for _ in range(3):
            with pytest.raises(InvalidOrderStatus) as exc_info:
                service.pay_order(OWNER, uuid4())
            assert isinstance(exc_info.value, ConflictError)
            assert exc_info.value.meta["current_status"] == OrderStatus.CANCELLED
        assert coordinator.calls == 0

    def test_stale_state_aborts_without_history(self, service, order_repo):
        order_repo.get_by_id.return_value = _order(OrderStatus.CREATED)
        order_repo.update_status.return_value = None

        with pytest.raises(StaleOrderState):
            service.pay_order(OWNER, uuid4())

        order_repo.add_history.assert_not_called()
        order_repo.save_events.assert_not_called()

    def test_stranger_cannot_pay(self, service, order_repo):
        order_repo.get_by_id.return_value = _order(owner_id="1")
        with pytest.raises(OrderAccessDenied):
            service.pay_order(STRANGER, uuid4())
        order_repo.update_status.assert_not_called()


# ---------------------------------------------------------------------------
# cancel_order
# ---------------------------------------------------------------------------


def _item(quantity):
    return SimpleNamespace(product_id=uuid4(), quantity=quantity)


class TestCancelOrder:
    def test_cancel_created_order_releases_stock(self, service, order_repo, stock_repo):
        items = [_item(3), _item(1)]
        order = _order(OrderStatus.CREATED, items=items)
        updated = MagicMock(name="updated")
        order_repo.get_by_id.return_value = order
        order_repo.update_status.return_value = updated

        result = service.cancel_order(OWNER, order.id, notes="changed my mind")

        assert result.outcome == OrderOutcome.CANCELLED
        scope = order_repo.update_status.call_args.args[2]
        expected = sorted(items, key=lambda item: str(item.product_id))
        assert stock_repo.increment.call_args_list == [
            call(item.product_id, item.quantity, scope) for item in expected
        ]
        assert order_repo.add_history.call_args.kwargs["notes"] == "changed my mind"
        (event,) = _events(updated)
        assert isinstance(event, OrderCancelled)
        assert event.units_released == 4
        assert event.previous_status == OrderStatus.CREATED

    def test_cancel_paid_order_emits_audit_event(self, service, order_repo, caplog):
        order = _order(OrderStatus.PAID, owner_id="1", items=[_item(2)])
        updated = MagicMock(name="updated")
        order_repo.get_by_id.return_value = order
        order_repo.update_status.return_value = updated

        result = service.cancel_order(ADMIN, order.id)

        assert result.outcome == OrderOutcome.CANCELLED
        events = _events(updated)
        assert [type(e) for e in events] == [OrderCancelled, PaidOrderCancelled]
        assert events[1].owner_id == "1"
        assert events[1].actor_id == "99"
        assert any(
            "order.paid_order_cancelled" in record.getMessage()
            for record in caplog.records
        )

    def test_cancel_is_idempotent(self, service, order_repo, stock_repo, coordinator):
        order_repo.get_by_id.return_value = _order(OrderStatus.CANCELLED)

        result = service.cancel_order(OWNER, uuid4())

        assert result.outcome == OrderOutcome.ALREADY_CANCELLED
        assert result.message == "Order is already cancelled"
        assert coordinator.calls == 0
        stock_repo.increment.assert_not_called()

    def test_stale_cancel_releases_nothing(self, service, order_repo, stock_repo):
        order_repo.get_by_id.return_value = _order(OrderStatus.CREATED, items=[_item(1)])
        order_repo.update_status.return_value = None

        with pytest.raises(StaleOrderState):
            service.cancel_order(OWNER, uuid4())

        stock_repo.increment.assert_not_called()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    def test_get_order_not_found(self, service, order_repo):
        order_repo.get_by_id.return_value = None
        with pytest.raises(OrderNotFound):
            service.get_order(OWNER, uuid4())

    def test_get_order_checks_existence_before_access(self, service, order_repo):
        order_repo.get_by_id.return_value = None
        with pytest.raises(OrderNotFound):
            service.get_order(STRANGER, uuid4())

    def test_admin_reads_any_order(self, service, order_repo):
        order = _order(owner_id="1")
        order_repo.get_by_id.return_value = order
        assert service.get_order(ADMIN, order.id) is order

    def test_customer_listing_is_scoped_to_owner(self, service, order_repo):
        service.list_orders(OWNER, {"status": OrderStatus.PAID, "owner_id": "2"})
        order_repo.list.assert_called_once_with(
            {"status": OrderStatus.PAID, "owner_id": "1"}
        )

    def test_admin_listing_is_unscoped(self, service, order_repo):
        service.list_orders(ADMIN)
        order_repo.list.assert_called_once_with({})
