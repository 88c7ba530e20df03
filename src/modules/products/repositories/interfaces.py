"""Product catalog and stock store interfaces.

``IProductRepository`` is the catalog look-up: it resolves product ids to
price and available stock in one batch call.  ``IStockRepository`` is the
only way stock changes, always inside a ``TransactionScope``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.core.transactions import TransactionScope
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product catalog."""

    @abstractmethod
    def get_many(self, ids: Iterable[UUID | str]) -> List[Product]:
        """Resolve active products by id in a single query.

        Unknown, malformed and inactive ids are simply absent from the
        result; callers treat a short result as "not found".
        """

    @abstractmethod
    def get_by_sku(self, sku: str) -> Optional[Product]:
        """Retrieve a product by SKU."""

    @abstractmethod
    def save(
        self, entity: Product, update_fields: Optional[Iterable[str]] = None
    ) -> Product:
        """Persist a product; ``update_fields`` limits which columns are written."""


class IStockRepository(ABC):
    """Stock store: atomic increment/decrement scoped to a transaction."""

    @abstractmethod
    def get_quantity(self, product_id: UUID | str) -> Optional[int]:
        """Return current stock, or ``None`` if the product does not exist."""

    @abstractmethod
    def decrement(
        self, product_id: UUID | str, amount: int, scope: TransactionScope
    ) -> int:
        """Remove ``amount`` units and return the remaining stock.

        Raises:
            ProductNotFound: product does not exist.
            InsufficientStock: fewer than ``amount`` units are available.
        """

    @abstractmethod
    def increment(
        self, product_id: UUID | str, amount: int, scope: TransactionScope
    ) -> int:
        """Add ``amount`` units back and return the resulting stock.

        Raises:
            ProductNotFound: product does not exist.
        """
