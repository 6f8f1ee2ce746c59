"""Orders API endpoints.

Order ingestion (created/updated events), manual status transitions and the
ready-to-ship queue. All endpoints act on the store named by ``X-Store-ID``.
"""

from common.exceptions import DomainError
from common.responses import domain_error_response
from common.scope import actor_of, get_request_store
from django.http import Http404
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import generics
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import OrderFilter
from .models import Order
from .selectors import order_detail, orders_for_store, orders_ready_to_ship
from .serializers import (
    OrderCreateSerializer,
    OrderDetailSerializer,
    OrderPatchSerializer,
    OrderSerializer,
    OrderTransitionSerializer,
)
from .services import create_order, patch_order, transition_order


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"


def _store_order(request, order_id) -> Order:
    store = get_request_store(request)
    try:
        return order_detail(store_id=store.id, order_id=int(order_id))
    except (Order.DoesNotExist, ValueError):
        raise Http404("Not found.")


class OrderListCreateView(generics.ListAPIView):
    """List the store's orders or ingest a new one."""

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = DefaultPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = OrderFilter
    throttle_scope = "orders"

    def get_queryset(self):
        store = get_request_store(self.request)
        return orders_for_store(store_id=store.id).order_by("-id")

    @extend_schema(
        tags=["Orders"],
        summary="List orders",
        description="Filters: status (repeatable), number, external_id, created_after, created_before (ISO).",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @extend_schema(
        tags=["Orders"],
        summary="Create order",
        description="Ingests an \"order created\" event. The order starts as pending.",
        request=OrderCreateSerializer,
        responses={201: OrderSerializer},
        examples=[
            OpenApiExample(
                "Order created event",
                value={
                    "external_id": "shop-1001",
                    "customer_name": "Ana Perez",
                    "items": [{"product_id": 7, "quantity": 2}],
                },
                request_only=True,
            ),
            OpenApiExample(
                "Unknown product",
                value={"code": "invalid_order_data", "detail": "Unknown products for this store.", "product_ids": [99]},
                response_only=True,
            ),
        ],
    )
    def post(self, request):
        store = get_request_store(request)
        ser = OrderCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            order = create_order(store=store, actor=actor_of(request), **ser.validated_data)
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(OrderSerializer(order).data, status=201)


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "orders"

    @extend_schema(tags=["Orders"], summary="Get order", responses={200: OrderDetailSerializer})
    def get(self, request, order_id: int):
        order = _store_order(request, order_id)
        return Response(OrderDetailSerializer(order).data)

    @extend_schema(
        tags=["Orders"],
        summary="Update order",
        description=(
            "Ingests an \"order updated\" event. Plain fields, line items and status are applied "
            "in one transaction. Line items are locked once the order has left pending/confirmed."
        ),
        request=OrderPatchSerializer,
        responses={200: OrderDetailSerializer},
        examples=[
            OpenApiExample(
                "Locked",
                value={"code": "order_locked", "detail": "Stock was already deducted for this order.", "order_id": 12},
                response_only=True,
            ),
        ],
    )
    def patch(self, request, order_id: int):
        order = _store_order(request, order_id)
        ser = OrderPatchSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        items = data.pop("items", None)
        status = data.pop("status", None)
        expected_version = data.pop("expected_version", None)
        try:
            updated = patch_order(
                order=order,
                fields=data,
                items=items,
                status=status,
                actor=actor_of(request),
                expected_version=expected_version,
            )
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(OrderDetailSerializer(order_detail(store_id=updated.store_id, order_id=updated.id)).data)


class OrderTransitionView(APIView):
    """Move an order to another status through the state machine."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Transition order status",
        request=OrderTransitionSerializer,
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample("Ship", value={"status": "shipped", "expected_version": 4}, request_only=True),
            OpenApiExample(
                "Invalid transition",
                value={
                    "code": "invalid_transition",
                    "detail": "Cannot move order from pending to shipped.",
                    "order_id": 12,
                    "from_status": "pending",
                    "to_status": "shipped",
                },
                response_only=True,
            ),
            OpenApiExample(
                "Concurrent modification",
                value={
                    "code": "concurrent_modification",
                    "detail": "The order was modified concurrently; reload it and retry.",
                    "order_id": 12,
                    "expected_version": 4,
                    "current_version": 5,
                },
                response_only=True,
            ),
        ],
    )
    def post(self, request, order_id: int):
        order = _store_order(request, order_id)
        ser = OrderTransitionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            updated = transition_order(
                order=order,
                target_status=ser.validated_data["status"],
                expected_version=ser.validated_data.get("expected_version"),
                note=ser.validated_data.get("note", ""),
                actor=actor_of(request),
            )
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(OrderSerializer(updated).data)


class ReadyToShipListView(generics.ListAPIView):
    """Carrier handoff queue: orders in ready_to_ship, oldest first."""

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = DefaultPagination
    throttle_scope = "orders"

    def get_queryset(self):
        store = get_request_store(self.request)
        return orders_ready_to_ship(store_id=store.id)

    @extend_schema(tags=["Orders"], summary="Orders ready to ship")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)
