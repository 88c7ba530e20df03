"""Product service layer (Use Cases).

Orchestrates catalog management for the Product aggregate, delegating
persistence to the injected ``IProductRepository``.

Business rules enforced here:
- SKU must be unique.
- Price must be greater than zero and stock non-negative (validated by DTO).
- Products are deactivated, never deleted: order items keep referencing
  them.  Inactive products are hidden from non-elevated readers and
  cannot be ordered.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from django.db import transaction

from modules.products.exceptions import ProductAlreadyExists, ProductNotFound
from modules.products.models import Product, ProductStatus

if TYPE_CHECKING:
    from modules.products.dtos import CreateProductDTO, UpdateProductDTO
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductService:
    """Application service for Product use-cases.

    Receives an ``IProductRepository`` via constructor injection (DIP).
    """

    def __init__(self, repository: IProductRepository) -> None:
        self._repo = repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_product(self, dto: CreateProductDTO) -> Product:
        """Create a new product after enforcing uniqueness rules.

        Raises:
            ProductAlreadyExists: if SKU is already taken.
        """
        log = logger.bind(sku=dto.sku)

        if self._repo.get_by_sku(dto.sku):
            log.warning("product.duplicate_sku")
            raise ProductAlreadyExists(dto.sku)

        product = Product(
            sku=dto.sku,
            name=dto.name,
            price=dto.price,
            description=dto.description,
            stock_quantity=dto.stock_quantity,
        )
        product = self._repo.save(product)
        log.info("product.created", product_id=str(product.id))
        return product

    @transaction.atomic
    def update_product(self, id: str, dto: UpdateProductDTO) -> Product:
        """Update an existing product with the supplied fields only.

        Raises:
            ProductNotFound: if the product does not exist.
        """
        product = self._get_or_raise(id)
        changes = dto.changes()
        if not changes:
            return product

        for field, value in changes.items():
            setattr(product, field, value)

        product = self._repo.save(product, update_fields=changes.keys())
        logger.info(
            "product.updated",
            product_id=str(product.id),
            fields=sorted(changes),
        )
        return product

    @transaction.atomic
    def deactivate_product(self, id: str) -> Product:
        """Withdraw a product from the catalog.  No-op when already inactive.

        Raises:
            ProductNotFound: if the product does not exist.
        """
        product = self._get_or_raise(id)
        if product.status == ProductStatus.INACTIVE:
            return product

        product.status = ProductStatus.INACTIVE
        product = self._repo.save(product, update_fields=["status"])
        logger.info("product.deactivated", product_id=str(product.id))
        return product

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_products(
        self,
        filters: Optional[Dict[str, Any]] = None,
        include_inactive: bool = False,
    ):
        """Return products, optionally filtered.  Active only by default."""
        scoped = dict(filters or {})
        if not include_inactive:
            scoped["status"] = ProductStatus.ACTIVE
        return self._repo.list(scoped)

    def get_product(self, id: str, include_inactive: bool = False) -> Product:
        """Retrieve a single product by ID.

        Raises:
            ProductNotFound: if the product does not exist, or is inactive
                and ``include_inactive`` is not set.
        """
        product = self._get_or_raise(id)
        if not include_inactive and not product.is_active:
            raise ProductNotFound(id)
        return product

    def _get_or_raise(self, id: str) -> Product:
        product = self._repo.get_by_id(id)
        if not product:
            raise ProductNotFound(id)
        return product
