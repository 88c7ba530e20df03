"""Domain events for the Orders bounded context.

Extra fields hold JSON-friendly values (strings and ints) so that events
survive the round trip through the outbox payload unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created and its stock reserved."""

    owner_id: str = ""
    total_amount: str = "0.00"
    item_count: int = 0


@dataclass(frozen=True)
class OrderPaid(DomainEvent):
    """Raised when a created order is paid."""

    actor_id: str = ""
    total_amount: str = "0.00"


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled and its stock released."""

    actor_id: str = ""
    previous_status: str = ""
    units_released: int = 0


@dataclass(frozen=True)
class PaidOrderCancelled(DomainEvent):
    """Audit signal: a paid order was cancelled without refund handling."""

    actor_id: str = ""
    owner_id: str = ""
    total_amount: str = "0.00"
