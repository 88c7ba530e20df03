"""Product API views.

Exposes the ``ProductService`` via HTTP using DRF ViewSets.  Any
authenticated user can browse the active catalog; creating, updating
and deactivating products requires a staff user.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import BasePermission, IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.products.dtos import CreateProductDTO, UpdateProductDTO
from modules.products.filters import ProductFilter
from modules.products.models import Product
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.serializers import (
    CreateProductSerializer,
    ProductSerializer,
    UpdateProductSerializer,
)
from modules.products.services import ProductService

WRITE_ACTIONS = {"create", "partial_update", "destroy"}


class ProductViewSet(GenericViewSet):
    """ViewSet for Product catalog operations.

    Uses ``ProductService`` with ``ProductDjangoRepository`` (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    serializer_class = ProductSerializer
    pagination_class = StandardResultsSetPagination
    filterset_class = ProductFilter
    search_fields = ["name", "sku", "description"]
    ordering_fields = ["name", "price", "stock_quantity", "created_at"]
    ordering = ["name", "id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = ProductService(repository=ProductDjangoRepository())

    def get_permissions(self) -> list[BasePermission]:
        if self.action in WRITE_ACTIONS:
            return [IsAuthenticated(), IsAdminUser()]
        return [IsAuthenticated()]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Product.objects.none()
        return self._service.list_products(include_inactive=self._is_staff())

    def _is_staff(self) -> bool:
        return bool(self.request.user and self.request.user.is_staff)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/products/

        Staff users also see inactive products.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = ProductSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/"""
        product = self._service.get_product(pk, include_inactive=self._is_staff())
        return Response(ProductSerializer(product).data)

    # ------------------------------------------------------------------
    # Create / Update / Deactivate (staff only)
    # ------------------------------------------------------------------

    @extend_schema(request=CreateProductSerializer, responses={201: ProductSerializer})
    def create(self, request: Request) -> Response:
        """POST /api/v1/products/"""
        serializer = CreateProductSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        product = self._service.create_product(
            CreateProductDTO(**serializer.validated_data)
        )
        return Response(
            ProductSerializer(product).data, status=status.HTTP_201_CREATED
        )

    @extend_schema(request=UpdateProductSerializer, responses=ProductSerializer)
    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/products/{pk}/"""
        serializer = UpdateProductSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        product = self._service.update_product(
            pk, UpdateProductDTO(**serializer.validated_data)
        )
        return Response(ProductSerializer(product).data)

    @extend_schema(request=None, responses={204: None})
    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/v1/products/{pk}/

        Deactivates the product; it stays referenced by existing orders.
        """
        self._service.deactivate_product(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)
