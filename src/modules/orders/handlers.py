"""Event handlers for Orders domain events.

Handlers run when the outbox relay dispatches an event; they only log.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderPaid,
    PaidOrderCancelled,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            owner_id=event.owner_id,
            total_amount=event.total_amount,
            item_count=event.item_count,
        )


class OrderPaidHandler(IEventHandler[OrderPaid]):
    def handle(self, event: OrderPaid) -> None:
        logger.info(
            "order.event.paid",
            order_id=str(event.aggregate_id),
            actor_id=event.actor_id,
            total_amount=event.total_amount,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.event.cancelled",
            order_id=str(event.aggregate_id),
            actor_id=event.actor_id,
            previous_status=event.previous_status,
            units_released=event.units_released,
        )


class PaidOrderCancelledHandler(IEventHandler[PaidOrderCancelled]):
    """Operator audit signal: money was taken for an order now cancelled."""

    def handle(self, event: PaidOrderCancelled) -> None:
        logger.warning(
            "order.audit.paid_order_cancelled",
            order_id=str(event.aggregate_id),
            actor_id=event.actor_id,
            owner_id=event.owner_id,
            total_amount=event.total_amount,
        )


order_created_handler = OrderCreatedHandler()
order_paid_handler = OrderPaidHandler()
order_cancelled_handler = OrderCancelledHandler()
paid_order_cancelled_handler = PaidOrderCancelledHandler()
