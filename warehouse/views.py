"""Warehouse API: picking sessions, picking and packing counters, completion.

Operator devices call ``pick``/``pack`` once per scanned unit; conflicting
writes come back as domain errors (``over_pack``, ``too_many_conflicts``...)
with the same body shape as every other endpoint.
"""

from common.exceptions import DomainError
from common.responses import domain_error_response
from common.scope import actor_of, get_request_store
from django.core.exceptions import ObjectDoesNotExist
from django.http import Http404
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from orders.serializers import OrderSerializer
from rest_framework import generics
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .selectors import (
    active_sessions,
    confirmed_orders_available,
    packing_list,
    picking_list,
    session_for_store,
    stale_sessions,
)
from .serializers import (
    AbandonSerializer,
    CreateSessionSerializer,
    PackingListSerializer,
    PackingProgressSerializer,
    PackSerializer,
    PickingListRowSerializer,
    PickingSessionSerializer,
    PickSerializer,
    SessionItemSerializer,
)
from .services import (
    abandon_session,
    complete_session,
    create_session,
    finish_picking,
    increment_packed,
    record_pick,
    remove_order_from_session,
)


def _session(request, session_id):
    store = get_request_store(request)
    try:
        return session_for_store(store_id=store.id, session_id=int(session_id))
    except (ObjectDoesNotExist, ValueError):
        raise Http404("Not found.")


def _run(call, render):
    try:
        result = call()
    except DomainError as exc:
        return domain_error_response(exc)
    except ObjectDoesNotExist:
        raise Http404("Not found.")
    return Response(render(result))


class SessionListCreateView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse"

    @extend_schema(
        tags=["Warehouse"],
        summary="List active picking sessions",
        parameters=[OpenApiParameter(name="stale", description="Only sessions flagged stale", type=bool)],
        responses={200: PickingSessionSerializer(many=True)},
    )
    def get(self, request):
        store = get_request_store(request)
        stale = request.query_params.get("stale", "").lower() in {"1", "true", "yes"}
        qs = stale_sessions(store_id=store.id) if stale else active_sessions(store_id=store.id)
        return Response(PickingSessionSerializer(qs, many=True).data)

    @extend_schema(
        tags=["Warehouse"],
        summary="Create picking session",
        description="Batches confirmed orders into a session and moves them to in_preparation. All or nothing.",
        request=CreateSessionSerializer,
        responses={201: PickingSessionSerializer},
        examples=[
            OpenApiExample("Create", value={"order_ids": [12, 13, 14]}, request_only=True),
            OpenApiExample(
                "Created",
                value={"id": 3, "code": "PREP-18012026-02", "status": "picking", "order_ids": [12, 13, 14]},
                response_only=True,
            ),
            OpenApiExample(
                "Not eligible",
                value={
                    "code": "order_not_eligible",
                    "detail": "Some orders cannot be added to a picking session.",
                    "offenders": [
                        {"order_id": 13, "reason": "in_active_session", "session_code": "PREP-18012026-01"},
                        {"order_id": 14, "reason": "not_confirmed", "status": "pending"},
                    ],
                },
                response_only=True,
            ),
        ],
    )
    def post(self, request):
        store = get_request_store(request)
        ser = CreateSessionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            session = create_session(store=store, order_ids=ser.validated_data["order_ids"], actor=actor_of(request))
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(PickingSessionSerializer(session).data, status=201)


class SessionDetailView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse"

    @extend_schema(tags=["Warehouse"], summary="Get picking session", responses={200: PickingSessionSerializer})
    def get(self, request, session_id: int):
        return Response(PickingSessionSerializer(_session(request, session_id)).data)


class PickingListView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse"

    @extend_schema(tags=["Warehouse"], summary="Picking list", responses={200: PickingListRowSerializer(many=True)})
    def get(self, request, session_id: int):
        session = _session(request, session_id)
        return Response(PickingListRowSerializer(picking_list(session=session), many=True).data)


class PickView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse_counters"

    @extend_schema(
        tags=["Warehouse"],
        summary="Record picked units",
        request=PickSerializer,
        responses={200: SessionItemSerializer},
        examples=[OpenApiExample("One unit", value={"product_id": 7, "quantity": 1}, request_only=True)],
    )
    def post(self, request, session_id: int):
        session = _session(request, session_id)
        ser = PickSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _run(
            lambda: record_pick(
                session=session,
                product_id=ser.validated_data["product_id"],
                delta=ser.validated_data["quantity"],
                actor=actor_of(request),
            ),
            lambda item: SessionItemSerializer(item).data,
        )


class FinishPickingView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse"

    @extend_schema(tags=["Warehouse"], summary="Finish picking", request=None, responses={200: PickingSessionSerializer})
    def post(self, request, session_id: int):
        session = _session(request, session_id)
        return _run(
            lambda: finish_picking(session=session, actor=actor_of(request)),
            lambda s: PickingSessionSerializer(s).data,
        )


class PackingListView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse"

    @extend_schema(tags=["Warehouse"], summary="Packing list", responses={200: PackingListSerializer})
    def get(self, request, session_id: int):
        session = _session(request, session_id)
        return Response(PackingListSerializer(packing_list(session=session)).data)


class PackView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse_counters"

    @extend_schema(
        tags=["Warehouse"],
        summary="Record packed units",
        description="Moves one order's packed quantity for a product. Negative quantities undo a pack.",
        request=PackSerializer,
        responses={200: PackingProgressSerializer},
        examples=[
            OpenApiExample("One unit", value={"order_id": 12, "product_id": 7, "quantity": 1}, request_only=True),
            OpenApiExample(
                "Over pack",
                value={
                    "code": "over_pack",
                    "detail": "Packing would exceed the quantity needed for this order.",
                    "current": 2,
                    "needed": 2,
                    "requested": 1,
                    "session_id": 3,
                    "order_id": 12,
                    "product_id": 7,
                },
                response_only=True,
            ),
        ],
    )
    def post(self, request, session_id: int):
        session = _session(request, session_id)
        ser = PackSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _run(
            lambda: increment_packed(
                session=session,
                order_id=ser.validated_data["order_id"],
                product_id=ser.validated_data["product_id"],
                by_amount=ser.validated_data["quantity"],
                actor=actor_of(request),
            ),
            lambda row: PackingProgressSerializer(row).data,
        )


class CompleteSessionView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse"

    @extend_schema(
        tags=["Warehouse"],
        summary="Complete session",
        description="Moves every member order to ready_to_ship (deducting stock) and closes the session. All or nothing.",
        request=None,
        responses={200: PickingSessionSerializer},
        examples=[
            OpenApiExample(
                "Incomplete",
                value={
                    "code": "incomplete_packing",
                    "detail": "Some orders are not fully packed.",
                    "session_id": 3,
                    "shortages": [
                        {"order_id": 12, "product_id": 7, "quantity_needed": 2, "quantity_packed": 1, "missing": 1}
                    ],
                },
                response_only=True,
            ),
            OpenApiExample(
                "Order failed",
                value={
                    "code": "session_completion_failed",
                    "detail": "An order in the session could not be moved to ready_to_ship; nothing was changed.",
                    "session_id": 3,
                    "order_id": 13,
                    "cause": "invalid_transition",
                    "cause_detail": "Cannot move order from cancelled to ready_to_ship.",
                },
                response_only=True,
            ),
        ],
    )
    def post(self, request, session_id: int):
        session = _session(request, session_id)
        return _run(
            lambda: complete_session(session=session, actor=actor_of(request)),
            lambda s: PickingSessionSerializer(s).data,
        )


class AbandonSessionView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse"

    @extend_schema(
        tags=["Warehouse"],
        summary="Abandon session",
        request=AbandonSerializer,
        responses={200: PickingSessionSerializer},
    )
    def post(self, request, session_id: int):
        session = _session(request, session_id)
        ser = AbandonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _run(
            lambda: abandon_session(session=session, actor=actor_of(request), reason=ser.validated_data["reason"]),
            lambda s: PickingSessionSerializer(s).data,
        )


class RemoveOrderView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "warehouse"

    @extend_schema(
        tags=["Warehouse"],
        summary="Remove order from session",
        examples=[
            OpenApiExample(
                "Removed",
                value={"order_id": 12, "remaining_orders": 0, "session_abandoned": True},
                response_only=True,
            )
        ],
    )
    def delete(self, request, session_id: int, order_id: int):
        session = _session(request, session_id)
        return _run(
            lambda: remove_order_from_session(session=session, order_id=order_id, actor=actor_of(request)),
            lambda result: result,
        )


class ConfirmedOrdersView(generics.ListAPIView):
    """Confirmed orders that can be batched into a new session."""

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    throttle_scope = "warehouse"

    def get_queryset(self):
        store = get_request_store(self.request)
        return confirmed_orders_available(store_id=store.id)

    @extend_schema(tags=["Warehouse"], summary="Orders available for picking")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)
