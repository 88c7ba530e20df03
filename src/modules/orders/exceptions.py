"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each one
specialises a category from ``modules.core.exceptions`` so the API layer
can map it to an HTTP status without knowing about orders.
"""

from __future__ import annotations

from typing import Any, Iterable

from modules.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from modules.products.exceptions import InsufficientStock, ProductNotFound

__all__ = [
    "DuplicateOrderItem",
    "EmptyOrder",
    "IdempotencyKeyConflict",
    "InvalidIdempotencyKey",
    "InsufficientStock",
    "InvalidOrderStatus",
    "InvalidQuantity",
    "OrderAccessDenied",
    "OrderNotFound",
    "ProductNotFound",
    "ProductsNotFound",
    "StaleOrderState",
]


class EmptyOrder(ValidationError):
    """The order has no line items."""

    code = "empty_order"
    default_detail = "Order must contain at least one item."


class InvalidQuantity(ValidationError):
    """A line item asks for zero or a negative quantity."""

    code = "invalid_quantity"

    def __init__(self, product_id: Any, quantity: int) -> None:
        super().__init__(
            "Quantity must be greater than 0.",
            product_id=str(product_id),
            quantity=quantity,
        )


class DuplicateOrderItem(ValidationError):
    """The same product appears in more than one line item."""

    code = "duplicate_item"

    def __init__(self, product_ids: Iterable[Any]) -> None:
        ids = sorted(str(pid) for pid in product_ids)
        super().__init__(
            f"Duplicate products in order: {', '.join(ids)}.",
            product_ids=ids,
        )


class ProductsNotFound(ValidationError):
    """One or more requested products are unknown to the catalog."""

    code = "products_not_found"

    def __init__(self, missing_ids: Iterable[Any]) -> None:
        ids = [str(pid) for pid in missing_ids]
        super().__init__(
            f"Products not found: {', '.join(ids)}.",
            missing_ids=ids,
        )
        self.missing_ids = ids


class OrderNotFound(NotFoundError):
    """The requested order does not exist."""

    code = "order_not_found"

    def __init__(self, order_id: Any) -> None:
        super().__init__(f"Order {order_id} not found.", order_id=str(order_id))


class OrderAccessDenied(AuthorizationError):
    """The actor neither owns the order nor has elevated privileges."""

    def __init__(self, order_id: Any) -> None:
        super().__init__("Access denied.", order_id=str(order_id))


class InvalidOrderStatus(ConflictError):
    """An invalid status transition was attempted."""

    code = "invalid_transition"

    def __init__(self, detail: str, current_status: str, requested_status: str) -> None:
        super().__init__(
            detail,
            current_status=str(current_status),
            requested_status=str(requested_status),
        )
        self.current_status = current_status
        self.requested_status = requested_status


class StaleOrderState(ConflictError):
    """The order changed between the read and the conditional update."""

    code = "stale_order"

    def __init__(self, order_id: Any, expected_status: str) -> None:
        super().__init__(
            f"Order {order_id} was modified concurrently; retry the request.",
            order_id=str(order_id),
            expected_status=str(expected_status),
        )


class IdempotencyKeyConflict(ConflictError):
    """The idempotency key already belongs to another actor's order."""

    code = "idempotency_key_conflict"

    def __init__(self, key: str) -> None:
        super().__init__("Idempotency key already used.", idempotency_key=key)


class InvalidIdempotencyKey(ValidationError):
    """The idempotency key is longer than the stored column allows."""

    code = "invalid_idempotency_key"

    def __init__(self, max_length: int) -> None:
        super().__init__(
            f"Idempotency key must be at most {max_length} characters.",
            max_length=max_length,
        )
