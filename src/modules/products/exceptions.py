"""Product and stock domain exceptions.

Raised by the catalog service, the stock store and the order service;
rendered by the API exception handler.
"""

from __future__ import annotations

from typing import Any

from modules.core.exceptions import ConflictError, NotFoundError, ValidationError


class ProductNotFound(NotFoundError):
    """A product referenced by a stock movement does not exist."""

    code = "product_not_found"

    def __init__(self, product_id: Any) -> None:
        super().__init__(
            f"Product {product_id} not found.",
            product_id=str(product_id),
        )
        self.product_id = product_id


class InsufficientStock(ValidationError):
    """Not enough stock to fulfil a line item."""

    code = "insufficient_stock"

    def __init__(
        self,
        product_id: Any,
        available: int,
        requested: int,
        product_name: str = "",
    ) -> None:
        label = f'"{product_name}"' if product_name else str(product_id)
        super().__init__(
            f"Insufficient stock for product {label}. "
            f"Available: {available}, Requested: {requested}.",
            product_id=str(product_id),
            available=available,
            requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ProductAlreadyExists(ConflictError):
    """A product with the same SKU is already registered."""

    code = "duplicate_sku"

    def __init__(self, sku: str) -> None:
        super().__init__(f"SKU '{sku}' already registered.", sku=sku)
        self.sku = sku
