"""Product repositories package."""

from modules.products.repositories.django_repository import (
    ProductDjangoRepository,
    StockDjangoRepository,
)
from modules.products.repositories.interfaces import (
    IProductRepository,
    IStockRepository,
)

__all__ = [
    "IProductRepository",
    "IStockRepository",
    "ProductDjangoRepository",
    "StockDjangoRepository",
]
