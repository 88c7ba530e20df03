"""Django ORM implementations of the catalog and stock repositories.

Read methods follow the Null Object pattern: they return ``None`` (or a
shorter list) instead of raising, and the Service Layer decides how to
translate a missing entity.  Stock writes are single conditional
``UPDATE`` statements, so the floor of zero holds even when two orders
race past the service's pre-check.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from modules.core.transactions import TransactionScope
from modules.products.exceptions import InsufficientStock, ProductNotFound
from modules.products.models import Product, ProductStatus
from modules.products.repositories.interfaces import (
    IProductRepository,
    IStockRepository,
)

logger = structlog.get_logger(__name__)


def _parse_id(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class ProductDjangoRepository(IProductRepository):
    """Concrete catalog repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a product by primary key.

        Returns ``None`` for non-existent or invalid IDs.
        """
        pk = _parse_id(id)
        if pk is None:
            return None
        return Product.objects.filter(id=pk).first()

    def get_many(self, ids: Iterable[UUID | str]) -> List[Product]:
        pks = {pk for pk in (_parse_id(value) for value in ids) if pk is not None}
        if not pks:
            return []
        return list(
            Product.objects.filter(id__in=pks, status=ProductStatus.ACTIVE)
        )

    def list(self, filters: Optional[Dict[str, Any]] = None):
        """List products with optional Django ORM look-ups.

        Examples of valid filters::

            {"status": "active"}
            {"name__icontains": "widget"}
        """
        queryset = Product.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_by_sku(self, sku: str) -> Optional[Product]:
        """Retrieve a product by SKU (case-insensitive via upper normalisation)."""
        return Product.objects.filter(sku=sku.strip().upper()).first()

    @transaction.atomic
    def save(
        self, entity: Product, update_fields: Optional[Iterable[str]] = None
    ) -> Product:
        """Persist (create or update) a product.

        Updates pass ``update_fields`` so a price or name change never
        rewrites a stock quantity moved by a concurrent order.
        """
        if update_fields is not None:
            entity.save(update_fields=list(update_fields))
        else:
            entity.save()
        logger.info(
            "product.saved",
            product_id=str(entity.id),
            sku=entity.sku,
        )
        return entity


class StockDjangoRepository(IStockRepository):
    """Stock store backed by conditional ``UPDATE`` statements."""

    def get_quantity(self, product_id: UUID | str) -> Optional[int]:
        return self._current_quantity(product_id)

    def decrement(
        self, product_id: UUID | str, amount: int, scope: TransactionScope
    ) -> int:
        _check_amount(amount)
        scope.ensure_active()
        pk = _parse_id(product_id)
        if pk is None:
            raise ProductNotFound(product_id)

        updated = (
            Product.objects.using(scope.using)
            .filter(id=pk, stock_quantity__gte=amount)
            .update(
                stock_quantity=F("stock_quantity") - amount,
                updated_at=timezone.now(),
            )
        )
        remaining = self._current_quantity(pk, using=scope.using)
        if remaining is None:
            raise ProductNotFound(product_id)
        if not updated:
            logger.warning(
                "stock.decrement_rejected",
                product_id=str(pk),
                requested=amount,
                available=remaining,
            )
            raise InsufficientStock(pk, available=remaining, requested=amount)

        logger.info(
            "stock.decremented",
            product_id=str(pk),
            quantity=amount,
            remaining=remaining,
        )
        return remaining

    def increment(
        self, product_id: UUID | str, amount: int, scope: TransactionScope
    ) -> int:
        _check_amount(amount)
        scope.ensure_active()
        pk = _parse_id(product_id)
        if pk is None:
            raise ProductNotFound(product_id)

        updated = (
            Product.objects.using(scope.using)
            .filter(id=pk)
            .update(
                stock_quantity=F("stock_quantity") + amount,
                updated_at=timezone.now(),
            )
        )
        if not updated:
            raise ProductNotFound(product_id)

        restored = self._current_quantity(pk, using=scope.using)
        logger.info(
            "stock.incremented",
            product_id=str(pk),
            quantity=amount,
            restored_stock=restored,
        )
        return restored

    @staticmethod
    def _current_quantity(
        product_id: UUID | str, using: Optional[str] = None
    ) -> Optional[int]:
        pk = _parse_id(product_id)
        if pk is None:
            return None
        queryset = Product.objects.using(using) if using else Product.objects
        return queryset.filter(id=pk).values_list("stock_quantity", flat=True).first()


def _check_amount(amount: int) -> None:
    if amount < 1:
        raise ValueError(f"Stock movement amount must be positive, got {amount}.")
