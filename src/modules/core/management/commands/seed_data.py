from __future__ import annotations

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.core.actors import Actor
from modules.core.transactions import DjangoTransactionCoordinator
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.dtos import CreateProductDTO
from modules.products.models import Product
from modules.products.repositories.django_repository import (
    ProductDjangoRepository,
    StockDjangoRepository,
)
from modules.products.services import ProductService

SEED_ORDER_KEY = "seed-order-1"

CATALOG = [
    ("KB-001", "Mechanical Keyboard", Decimal("89.90"), 50),
    ("MS-001", "Wireless Mouse", Decimal("24.50"), 120),
    ("MN-027", 'Monitor 27"', Decimal("279.00"), 15),
    ("HS-001", "Headset", Decimal("59.90"), 40),
    ("DK-001", "USB-C Dock", Decimal("129.00"), 0),
]


class Command(BaseCommand):
    help = "Seed database with development users, products and one paid order."

    def handle(self, *args, **options):
        self.stdout.write("Seeding development data...")

        users = self._seed_users()
        products = self._seed_products()
        order_created = self._seed_order(users["alice"], products)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={len(users)}, "
                f"products={len(products)}, "
                f"orders={int(order_created)}"
            )
        )

    def _seed_users(self) -> dict:
        User = get_user_model()
        users = {}
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
        users["admin"] = User.objects.get(username="admin")
        for username in ("alice", "bob"):
            user, created = User.objects.get_or_create(username=username)
            if created:
                user.set_password(f"{username}123")
                user.save(update_fields=["password"])
            users[username] = user
        return users

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        repository = ProductDjangoRepository()
        service = ProductService(repository=repository)
        products: list[Product] = []
        for sku, name, price, stock in CATALOG:
            product = repository.get_by_sku(sku) or service.create_product(
                CreateProductDTO(
                    sku=sku, name=name, price=price, stock_quantity=stock
                )
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_order(self, owner, products: list[Product]) -> bool:
        """Create and pay one order through the service so stock stays in step."""
        self.stdout.write("Creating orders...")
        service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
            stock_repository=StockDjangoRepository(),
            transaction_coordinator=DjangoTransactionCoordinator(),
        )
        actor = Actor.from_user(owner)
        in_stock = [product for product in products if product.stock_quantity >= 2]
        result = service.create_order(
            actor,
            CreateOrderDTO(
                items=[
                    CreateOrderItemDTO(product_id=product.id, quantity=2)
                    for product in in_stock[:2]
                ],
                idempotency_key=SEED_ORDER_KEY,
            ),
        )
        service.pay_order(actor, result.order.id)
        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return result.changed
