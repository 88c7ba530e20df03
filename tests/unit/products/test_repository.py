"""Unit tests for the catalog and stock repositories.

Covers:
- Catalog batch look-up returns active products only.
- Conditional decrement: floor of zero, exact amounts, error details.
- Increment restores stock.
- Invalid amounts and unknown products.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.core.transactions import DjangoTransactionCoordinator
from modules.products.exceptions import InsufficientStock, ProductNotFound
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import (
    ProductDjangoRepository,
    StockDjangoRepository,
)

pytestmark = pytest.mark.unit


@pytest.fixture()
def stock_repo():
    return StockDjangoRepository()


@pytest.fixture()
def run():
    return DjangoTransactionCoordinator().run_atomic


class TestProductRepository:
    def test_get_many_returns_only_active_known_products(self, make_product):
        active = make_product(name="Active")
        inactive = make_product(name="Inactive", status=ProductStatus.INACTIVE)

        found = ProductDjangoRepository().get_many(
            [active.id, inactive.id, uuid4(), "not-a-uuid"]
        )

        assert [p.id for p in found] == [active.id]

    def test_get_many_with_no_valid_ids(self):
        assert ProductDjangoRepository().get_many(["garbage"]) == []

    def test_get_by_id_invalid_returns_none(self):
        assert ProductDjangoRepository().get_by_id("not-a-uuid") is None

    def test_get_by_sku_is_case_insensitive(self, make_product):
        product = make_product()
        found = ProductDjangoRepository().get_by_sku(product.sku.lower())
        assert found == product

    def test_save_persists_changes(self, make_product):
        product = make_product(price="5.00")
        product.price = Decimal("7.50")

        ProductDjangoRepository().save(product)

        product.refresh_from_db()
        assert product.price == Decimal("7.50")

    def test_save_with_update_fields_leaves_other_columns(self, make_product):
        product = make_product(price="5.00", stock=10)
        stale = Product.objects.get(pk=product.pk)
        Product.objects.filter(pk=product.pk).update(stock_quantity=3)
        stale.price = Decimal("6.00")

        ProductDjangoRepository().save(stale, update_fields=["price"])

        product.refresh_from_db()
        assert product.price == Decimal("6.00")
        assert product.stock_quantity == 3

    def test_list_applies_filters(self, make_product):
        make_product(name="Widget")
        make_product(name="Gadget")
        names = list(
            ProductDjangoRepository()
            .list({"name__icontains": "widg"})
            .values_list("name", flat=True)
        )
        assert names == ["Widget"]


class TestStockDecrement:
    def test_decrement_returns_remaining(self, make_product, stock_repo, run):
        product = make_product(stock=10)

        remaining = run(lambda scope: stock_repo.decrement(product.id, 3, scope))

        assert remaining == 7
        assert stock_repo.get_quantity(product.id) == 7

    def test_decrement_to_exactly_zero(self, make_product, stock_repo, run):
        product = make_product(stock=4)
        assert run(lambda scope: stock_repo.decrement(product.id, 4, scope)) == 0

    def test_decrement_below_zero_is_refused(self, make_product, stock_repo, run):
        product = make_product(stock=2)

        with pytest.raises(InsufficientStock) as exc_info:
            run(lambda scope: stock_repo.decrement(product.id, 5, scope))

        assert exc_info.value.available == 2
        assert exc_info.value.requested == 5
        assert stock_repo.get_quantity(product.id) == 2

    def test_decrement_unknown_product(self, stock_repo, run):
        with pytest.raises(ProductNotFound):
            run(lambda scope: stock_repo.decrement(uuid4(), 1, scope))

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount_rejected(self, make_product, stock_repo, run, amount):
        product = make_product(stock=5)
        with pytest.raises(ValueError):
            run(lambda scope: stock_repo.decrement(product.id, amount, scope))


class TestStockIncrement:
    def test_increment_restores_stock(self, make_product, stock_repo, run):
        product = make_product(stock=1)

        restored = run(lambda scope: stock_repo.increment(product.id, 4, scope))

        assert restored == 5
        product.refresh_from_db()
        assert product.stock_quantity == 5

    def test_increment_unknown_product(self, stock_repo, run):
        with pytest.raises(ProductNotFound):
            run(lambda scope: stock_repo.increment(uuid4(), 1, scope))

    def test_get_quantity_unknown_is_none(self, stock_repo):
        assert stock_repo.get_quantity(uuid4()) is None
        assert stock_repo.get_quantity("nope") is None
