"""Read-only product endpoints (product CRUD lives with the external catalog tooling)."""

from common.scope import get_request_store
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiExample, extend_schema, extend_schema_view
from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from .filters import ProductFilter
from .models import Product
from .serializers import ProductSerializer


@extend_schema_view(
    list=extend_schema(
        summary="List products",
        description="Products of the current store with their cached stock. Filters: sku, name, is_active, negative_stock.",
        tags=["Catalog Endpoints"],
        examples=[
            OpenApiExample(
                "Product list",
                value={
                    "count": 1,
                    "next": None,
                    "previous": None,
                    "results": [
                        {
                            "id": 7,
                            "name": "Collagen 300g",
                            "sku": "COL-300",
                            "stock": 42,
                            "is_active": True,
                            "updated_at": "2026-01-18T12:00:00Z",
                        }
                    ],
                },
                response_only=True,
            )
        ],
    ),
    retrieve=extend_schema(summary="Get product", tags=["Catalog Endpoints"]),
)
class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = ProductSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = ProductFilter
    throttle_scope = "catalog"

    def get_queryset(self):
        store = get_request_store(self.request)
        return Product.objects.filter(store=store).order_by("name", "id")
