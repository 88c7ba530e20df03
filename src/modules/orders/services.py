"""Order service layer (Use Cases).

Orchestrates order creation, payment and cancellation.  Every command
that touches more than one record runs inside a single
``ITransactionCoordinator.run_atomic`` scope: the order rows, stock
movements, status history and outbox events commit together or not at
all.

Business rules enforced:
- An order has at least one line item, each with quantity >= 1 and a
  distinct product.
- Every requested product must resolve in the catalog.
- All stock checks run before any write; the conditional decrement in
  the stock store is the final guard against overselling.
- Unit prices are snapshotted and the total is computed once, here.
- Status transitions follow ``VALID_TRANSITIONS``; repeated pay/cancel
  calls are idempotent successes.
- Only the owner or an elevated actor may read, pay or cancel an order.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, TypeVar
from uuid import UUID

import structlog
from django.db import DatabaseError, IntegrityError

from modules.core.exceptions import InternalError
from modules.orders.constants import (
    IDEMPOTENCY_KEY_MAX_LENGTH,
    OrderOutcome,
    OrderStatus,
)
from modules.orders.dtos import OrderResult
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

if TYPE_CHECKING:
    from modules.core.actors import Actor
    from modules.core.transactions import ITransactionCoordinator, TransactionScope
    from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.models import Product
    from modules.products.repositories.interfaces import (
        IProductRepository,
        IStockRepository,
    )

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class OrderService:
    """Application service for Order use-cases.

    Receives its repositories and the transaction coordinator via
    constructor injection (DIP), so tests can substitute any of them.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        stock_repository: IStockRepository,
        transaction_coordinator: ITransactionCoordinator,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._stock_repo = stock_repository
        self._tx = transaction_coordinator

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, actor: Actor, dto: CreateOrderDTO) -> OrderResult:
        """Create a new order and reserve its stock atomically.

        Steps:
        1. Validate line items (non-empty, positive quantities, no duplicates).
        2. Replay an earlier order carrying the same idempotency key.
        3. Resolve all products in one catalog call.
        4. Check stock for every line before writing anything.
        5. In one transaction: persist order + items + history + outbox
           event and decrement stock (sorted by product id).

        Raises:
            EmptyOrder, InvalidQuantity, DuplicateOrderItem: bad line items.
            InvalidIdempotencyKey: key longer than the stored column.
            ProductsNotFound: some product ids are unknown.
            InsufficientStock: a line asks for more than is available.
            IdempotencyKeyConflict: key already used by another actor.
            InternalError: storage failure (nothing was written).
        """
        log = logger.bind(actor_id=actor.id, item_count=len(dto.items))
        log.info("order.creation_started")

        self._validate_items(dto.items)
        if (
            dto.idempotency_key
            and len(dto.idempotency_key) > IDEMPOTENCY_KEY_MAX_LENGTH
        ):
            raise InvalidIdempotencyKey(IDEMPOTENCY_KEY_MAX_LENGTH)

        if dto.idempotency_key:
            replay = self._find_replay(actor, dto.idempotency_key)
            if replay is not None:
                log.info(
                    "order.idempotency_hit",
                    order_id=str(replay.id),
                    key=dto.idempotency_key,
                )
                return OrderResult(order=replay, outcome=OrderOutcome.ALREADY_CREATED)

        products = self._resolve_products(dto.items)

        for item in dto.items:
            product = products[item.product_id]
            if product.stock_quantity < item.quantity:
                log.warning(
                    "order.insufficient_stock",
                    product_id=str(product.id),
                    available=product.stock_quantity,
                    requested=item.quantity,
                )
                raise InsufficientStock(
                    product.id,
                    available=product.stock_quantity,
                    requested=item.quantity,
                    product_name=product.name,
                )

        lines = [
            {
                "product_id": products[item.product_id].id,
                "quantity": item.quantity,
                "unit_price": products[item.product_id].price,
            }
            for item in dto.items
        ]
        total = sum(
            (line["unit_price"] * line["quantity"] for line in lines),
            Decimal("0.00"),
        )

        def work(scope: TransactionScope) -> UUID:
            order = self._order_repo.create(
                {
                    "owner_id": actor.id,
                    "items": lines,
                    "total_amount": total,
                    "idempotency_key": dto.idempotency_key,
                },
                scope,
            )
            self._order_repo.add_history(
                order_id=order.id,
                new_status=OrderStatus.CREATED,
                scope=scope,
                actor_id=actor.id,
                notes="Order created",
            )
            # Sorted by product id so concurrent orders lock rows in one order.
            for line in sorted(lines, key=lambda line: str(line["product_id"])):
                self._stock_repo.decrement(line["product_id"], line["quantity"], scope)

            order.add_domain_event(
                OrderCreated(
                    aggregate_id=order.id,
                    owner_id=actor.id,
                    total_amount=str(total),
                    item_count=len(lines),
                )
            )
            self._order_repo.save_events(order, scope)
            return order.id

        try:
            order_id = self._run_atomic(work, log)
        except InternalError as exc:
            # Lost a race on the idempotency key: the other request won.
            if dto.idempotency_key and isinstance(exc.__cause__, IntegrityError):
                replay = self._find_replay(actor, dto.idempotency_key)
                if replay is not None:
                    return OrderResult(
                        order=replay, outcome=OrderOutcome.ALREADY_CREATED
                    )
            raise

        order = self._reload(order_id)
        log.info("order.created", order_id=str(order_id), total_amount=str(total))
        return OrderResult(order=order, outcome=OrderOutcome.CREATED)

    def pay_order(self, actor: Actor, order_id: UUID | str) -> OrderResult:
        """Mark a created order as paid.  No stock moves on payment.

        Paying an already-paid order is an idempotent success.

        Raises:
            OrderNotFound: order does not exist.
            OrderAccessDenied: actor is neither owner nor elevated.
            InvalidOrderStatus: order is cancelled.
            StaleOrderState: order changed concurrently.
        """
        order = self.get_order(actor, order_id)
        log = logger.bind(
            order_id=str(order.id),
            actor_id=actor.id,
            current_status=order.status,
        )

        if order.status == OrderStatus.PAID:
            log.info("order.already_paid")
            return OrderResult(order=order, outcome=OrderOutcome.ALREADY_PAID)
        if order.status == OrderStatus.CANCELLED:
            log.warning("order.pay_rejected")
            raise InvalidOrderStatus(
                "Cannot pay for a cancelled order.",
                current_status=order.status,
                requested_status=OrderStatus.PAID,
            )
        if not order.can_transition_to(OrderStatus.PAID):
            log.warning("order.invalid_transition", new_status=OrderStatus.PAID)
            raise InvalidOrderStatus(
                f"Cannot pay order with status: {order.status}.",
                current_status=order.status,
                requested_status=OrderStatus.PAID,
            )

        previous_status = order.status

        def work(scope: TransactionScope) -> None:
            updated = self._order_repo.update_status(
                order.id, OrderStatus.PAID, scope, expected_status=previous_status
            )
            if updated is None:
                raise StaleOrderState(order.id, previous_status)
            self._order_repo.add_history(
                order_id=order.id,
                new_status=OrderStatus.PAID,
                scope=scope,
                old_status=previous_status,
                actor_id=actor.id,
                notes="Order paid",
            )
            updated.add_domain_event(
                OrderPaid(
                    aggregate_id=order.id,
                    actor_id=actor.id,
                    total_amount=str(order.total_amount),
                )
            )
            self._order_repo.save_events(updated, scope)

        self._run_atomic(work, log)
        log.info("order.paid")
        return OrderResult(order=self._reload(order.id), outcome=OrderOutcome.PAID)

    def cancel_order(
        self, actor: Actor, order_id: UUID | str, notes: str = ""
    ) -> OrderResult:
        """Cancel an order and release its reserved stock.

        Cancelling an already-cancelled order is an idempotent success.
        Cancelling a paid order is allowed (no refund is modelled) and emits
        a ``PaidOrderCancelled`` audit event.

        Raises:
            OrderNotFound: order does not exist.
            OrderAccessDenied: actor is neither owner nor elevated.
            InvalidOrderStatus: cancellation not allowed from current status.
            StaleOrderState: order changed concurrently.
        """
        order = self.get_order(actor, order_id)
        log = logger.bind(
            order_id=str(order.id),
            actor_id=actor.id,
            current_status=order.status,
        )

        if order.status == OrderStatus.CANCELLED:
            log.info("order.already_cancelled")
            return OrderResult(order=order, outcome=OrderOutcome.ALREADY_CANCELLED)
        if not order.can_transition_to(OrderStatus.CANCELLED):
            log.warning("order.cancel_not_allowed")
            raise InvalidOrderStatus(
                f"Cannot cancel order with status: {order.status}.",
                current_status=order.status,
                requested_status=OrderStatus.CANCELLED,
            )

        previous_status = order.status
        items = (
            sorted(order.items.all(), key=lambda item: str(item.product_id))
            if order.holds_stock
            else []
        )

        def work(scope: TransactionScope) -> None:
            updated = self._order_repo.update_status(
                order.id,
                OrderStatus.CANCELLED,
                scope,
                expected_status=previous_status,
            )
            if updated is None:
                raise StaleOrderState(order.id, previous_status)

            for item in items:
                self._stock_repo.increment(item.product_id, item.quantity, scope)

            self._order_repo.add_history(
                order_id=order.id,
                new_status=OrderStatus.CANCELLED,
                scope=scope,
                old_status=previous_status,
                actor_id=actor.id,
                notes=notes or "Order cancelled",
            )
            updated.add_domain_event(
                OrderCancelled(
                    aggregate_id=order.id,
                    actor_id=actor.id,
                    previous_status=str(previous_status),
                    units_released=sum(item.quantity for item in items),
                )
            )
            if previous_status == OrderStatus.PAID:
                updated.add_domain_event(
                    PaidOrderCancelled(
                        aggregate_id=order.id,
                        actor_id=actor.id,
                        owner_id=str(order.owner_id),
                        total_amount=str(order.total_amount),
                    )
                )
            self._order_repo.save_events(updated, scope)

        self._run_atomic(work, log)

        if previous_status == OrderStatus.PAID:
            log.warning(
                "order.paid_order_cancelled",
                total_amount=str(order.total_amount),
                note="refund handling required",
            )
        log.info(
            "order.stock_released",
            units_released=sum(item.quantity for item in items),
        )
        log.info("order.cancelled", previous_status=str(previous_status))
        return OrderResult(
            order=self._reload(order.id), outcome=OrderOutcome.CANCELLED
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, actor: Actor, order_id: UUID | str) -> Order:
        """Retrieve a single order the actor is allowed to see.

        Raises:
            OrderNotFound: if the order does not exist.
            OrderAccessDenied: actor is neither owner nor elevated.
        """
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(order_id)
        if not actor.can_access(order.owner_id):
            logger.warning(
                "order.access_denied",
                order_id=str(order.id),
                actor_id=actor.id,
            )
            raise OrderAccessDenied(order.id)
        return order

    def list_orders(
        self,
        actor: Actor,
        filters: Optional[Dict[str, Any]] = None,
    ):
        """Return orders visible to the actor, optionally filtered.

        Standard actors only ever see their own orders; elevated actors see
        everything unless ``filters`` narrows it (e.g. ``owner_id``).
        """
        scoped = dict(filters or {})
        if not actor.is_elevated:
            scoped["owner_id"] = actor.id
        return self._order_repo.list(scoped)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_items(items: Sequence[CreateOrderItemDTO]) -> None:
        if not items:
            raise EmptyOrder()
        for item in items:
            if item.quantity <= 0:
                raise InvalidQuantity(item.product_id, item.quantity)

        seen: set[UUID] = set()
        duplicates: set[UUID] = set()
        for item in items:
            if item.product_id in seen:
                duplicates.add(item.product_id)
            seen.add(item.product_id)
        if duplicates:
            raise DuplicateOrderItem(duplicates)

    def _resolve_products(
        self, items: Sequence[CreateOrderItemDTO]
    ) -> Dict[UUID, Product]:
        requested: List[UUID] = [item.product_id for item in items]
        found = {product.id: product for product in self._product_repo.get_many(requested)}
        missing = [product_id for product_id in requested if product_id not in found]
        if missing:
            logger.warning(
                "order.products_not_found",
                missing_ids=[str(product_id) for product_id in missing],
            )
            raise ProductsNotFound(missing)
        return found

    def _find_replay(self, actor: Actor, key: str) -> Optional[Order]:
        existing = self._order_repo.get_by_idempotency_key(key)
        if existing is None:
            return None
        if not actor.owns(existing.owner_id):
            raise IdempotencyKeyConflict(key)
        return existing

    def _reload(self, order_id: UUID | str) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _run_atomic(self, work: Callable[[TransactionScope], T], log: Any) -> T:
        """Run ``work`` through the coordinator, mapping storage failures.

        Domain errors raised inside ``work`` propagate unchanged; only
        database errors become ``InternalError``.
        """
        try:
            return self._tx.run_atomic(work)
        except DatabaseError as exc:
            log.error(
                "order.storage_failure",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise InternalError(
                "Storage failure; no changes were applied.",
                code="storage_failure",
            ) from exc
