"""Inventory ledger and reconciliation views."""

from common.scope import get_request_store
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from rest_framework import generics
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import InventoryMovementFilter
from .models import InventoryMovement
from .selectors import stock_drift_report
from .serializers import DriftRowSerializer, InventoryMovementSerializer


class MovementListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = InventoryMovementSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = InventoryMovementFilter
    throttle_scope = "inventory"

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="List inventory movements",
        description="Append-only stock ledger. Filters: product, order, kind, created_after, created_before (ISO).",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        store = get_request_store(self.request)
        return InventoryMovement.objects.filter(store=store).select_related("product").order_by("-created_at", "-id")


class ReconciliationView(APIView):
    """Cached stock vs ledger sum for every product of the store."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "inventory"

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Stock reconciliation report",
        parameters=[
            OpenApiParameter(name="anomalies", description="Only rows with drift or negative stock", type=bool),
        ],
        responses={200: DriftRowSerializer(many=True)},
        examples=[
            OpenApiExample(
                "Drift detected",
                value={
                    "anomaly_count": 1,
                    "results": [
                        {
                            "product_id": 7,
                            "sku": "COL-300",
                            "cached_stock": 40,
                            "ledger_stock": 42,
                            "drift": -2,
                            "negative": False,
                        }
                    ],
                },
                response_only=True,
            )
        ],
    )
    def get(self, request):
        store = get_request_store(request)
        only_anomalies = request.query_params.get("anomalies", "").lower() in {"1", "true", "yes"}
        rows = stock_drift_report(store_id=store.id, only_anomalies=only_anomalies)
        anomaly_count = sum(1 for r in rows if r["drift"] or r["negative"])
        return Response({"anomaly_count": anomaly_count, "results": DriftRowSerializer(rows, many=True).data})
