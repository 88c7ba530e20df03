"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  These are
the contracts between the API layer (DRF serializers) and the Service
layer.  DTOs are immutable (``frozen=True``).

Input DTOs only fix the *shape* (types).  Business validation (empty
orders, non-positive quantities, duplicates) belongs to ``OrderService``
so that it raises the domain ``ValidationError`` family.

- ``CreateOrderItemDTO``: input for a single order line item.
- ``CreateOrderDTO``: input for order creation (nested items).
- ``OrderResult``: outcome of a create/pay/cancel command.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from modules.orders.constants import OrderOutcome

if TYPE_CHECKING:
    from modules.orders.models import Order


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """Immutable DTO for a single order item in a creation request.

    The client sends ``product_id`` and ``quantity``.  ``unit_price`` is
    resolved by the Service Layer from the product catalog.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests."""

    model_config = ConfigDict(frozen=True)

    items: List[CreateOrderItemDTO]
    idempotency_key: Optional[str] = None


# ---------------------------------------------------------------------------
# Command results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderResult:
    """Order returned by a command plus what actually happened.

    ``changed`` is ``False`` for idempotent no-ops (already paid, already
    cancelled, idempotency-key replay): those are successes, not errors.
    """

    order: Order
    outcome: OrderOutcome

    @property
    def message(self) -> str:
        return self.outcome.label

    @property
    def changed(self) -> bool:
        return self.outcome in {
            OrderOutcome.CREATED,
            OrderOutcome.PAID,
            OrderOutcome.CANCELLED,
        }
