"""Order repository interface.

Extends ``IRepository[Order]`` with the order store contract: creation
with items, conditional status updates, status history and outbox
events.  Every write takes the ``TransactionScope`` opened by the
coordinator; the repository never commits on its own.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.core.transactions import TransactionScope
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any], scope: TransactionScope) -> Order:
        """Create an order with its items.

        ``data`` must include ``owner_id``, ``total_amount`` and ``items``
        (list of dicts with ``product_id``, ``quantity``, ``unit_price``),
        and optionally ``idempotency_key``.
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with its items (and their products) and history.

        Returns ``None`` for unknown or malformed ids.
        """

    @abstractmethod
    def update_status(
        self,
        id: UUID | str,
        new_status: str,
        scope: TransactionScope,
        expected_status: Optional[str] = None,
    ) -> Optional[Order]:
        """Set the status, optionally only if it still equals ``expected_status``.

        Returns the updated order, or ``None`` when no row matched.
        """

    @abstractmethod
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

    @abstractmethod
    def save_events(self, order: Order, scope: TransactionScope) -> int:
        """Write pending domain events to the outbox; return how many."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
