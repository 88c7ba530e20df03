"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Writes are
issued against the database alias of the caller's ``TransactionScope``;
atomicity across orders and stock belongs to the coordinator.

Concurrency control on status changes is a compare-and-set ``UPDATE``
(``WHERE status = expected``) instead of a long-lived row lock.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.db.models import QuerySet
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.core.transactions import TransactionScope
from modules.orders.constants import OUTBOX_TOPIC
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


def _parse_id(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any], scope: TransactionScope) -> Order:
        scope.ensure_active()
        order = Order(
            owner_id=data["owner_id"],
            total_amount=data["total_amount"],
            idempotency_key=data.get("idempotency_key"),
        )
        order.save(using=scope.using)

        items = data.get("items", [])
        for item_data in items:
            OrderItem(
                order=order,
                product_id=item_data["product_id"],
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            ).save(using=scope.using)

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            item_count=len(items),
            total_amount=str(order.total_amount),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _base_queryset(self, using: Optional[str] = None) -> QuerySet:
        manager = Order.objects.using(using) if using else Order.objects
        return manager.select_related("owner").prefetch_related(
            "items__product", "status_history"
        )

    def get_by_id(self, id: str, using: Optional[str] = None) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Uses ``select_related`` for the owner FK (single JOIN) and
        ``prefetch_related`` for items, items→product and status history
        (separate batched queries).  Prevents N+1 when rendering.
        """
        pk = _parse_id(id)
        if pk is None:
            return None
        return self._base_queryset(using).filter(id=pk).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List orders with optional filters and eager-loaded relations.

        Supported filter keys are plain ORM look-ups, e.g.:
        - ``status``
        - ``owner_id``
        - ``created_at__range``
        """
        queryset = self._base_queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
        return self._base_queryset().filter(idempotency_key=key).first()

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def update_status(
        self,
        id: UUID | str,
        new_status: str,
        scope: TransactionScope,
        expected_status: Optional[str] = None,
    ) -> Optional[Order]:
        scope.ensure_active()
        pk = _parse_id(id)
        if pk is None:
            return None

        queryset = Order.objects.using(scope.using).filter(id=pk)
        if expected_status is not None:
            queryset = queryset.filter(status=expected_status)
        updated = queryset.update(status=new_status, updated_at=timezone.now())

        log = logger.bind(
            order_id=str(pk),
            new_status=str(new_status),
            expected_status=expected_status,
        )
        if not updated:
            log.warning("order.status_update_missed")
            return None

        log.info("order.status_updated")
        return self.get_by_id(str(pk), using=scope.using)

    def add_history(
        self,
        order_id: UUID,
        new_status: str,
        scope: TransactionScope,
        old_status: Optional[str] = None,
        actor_id: str = "",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
        scope.ensure_active()
        history = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            actor_id=actor_id,
            notes=notes,
        )
        history.save(using=scope.using)

        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=str(new_status),
        )
        return history

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    def save_events(self, order: Order, scope: TransactionScope) -> int:
        """Persist the order's pending domain events as outbox rows."""
        scope.ensure_active()
        events = order.domain_events
        for event in events:
            OutboxEvent.objects.using(scope.using).create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=_serialize_event_payload(event),
                topic=OUTBOX_TOPIC,
            )
        order.clear_domain_events()

        logger.info(
            "order.events_saved",
            order_id=str(order.id),
            event_count=len(events),
        )
        return len(events)


def _serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
