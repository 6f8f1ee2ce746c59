"""Read-side queries for the warehouse screens."""

from collections import defaultdict

from django.db.models import Count, Exists, OuterRef, Q, QuerySet, Sum
from orders.models import Order

from .models import PackingProgress, PickingSession, PickingSessionItem, PickingSessionOrder


def session_for_store(*, store_id: int, session_id: int) -> PickingSession:
    return PickingSession.objects.get(store_id=store_id, pk=session_id)


def active_sessions(*, store_id: int) -> QuerySet[PickingSession]:
    return (
        PickingSession.objects.filter(store_id=store_id, status__in=PickingSession.ACTIVE_STATUSES)
        .annotate(order_count=Count("session_orders", filter=Q(session_orders__released_at__isnull=True)))
        .order_by("-created_at", "-id")
    )


def stale_sessions(*, store_id: int) -> QuerySet[PickingSession]:
    return active_sessions(store_id=store_id).filter(stale_flagged_at__isnull=False).order_by("last_activity_at")


def confirmed_orders_available(*, store_id: int) -> QuerySet[Order]:
    """Confirmed orders not held by an active session, oldest first."""

    busy = PickingSessionOrder.objects.filter(order_id=OuterRef("pk"), released_at__isnull=True)
    return (
        Order.objects.filter(store_id=store_id, status=Order.STATUS_CONFIRMED)
        .exclude(Exists(busy))
        .prefetch_related("items")
        .order_by("created_at", "id")
    )


def picking_list(*, session: PickingSession) -> list[dict]:
    """Aggregated shopping list for the session."""

    items = PickingSessionItem.objects.filter(session=session).select_related("product").order_by("product__name", "id")
    return [
        {
            "product_id": item.product_id,
            "product_name": item.product.name,
            "sku": item.product.sku,
            "stock": item.product.stock,
            "total_quantity_needed": item.total_quantity_needed,
            "quantity_picked": item.quantity_picked,
            "is_complete": item.quantity_picked >= item.total_quantity_needed,
        }
        for item in items
    ]


def packing_list(*, session: PickingSession) -> dict:
    """Per-order packing progress plus the basket: units picked vs packed per product."""

    member_ids = list(
        session.session_orders.filter(released_at__isnull=True).values_list("order_id", flat=True)
    )
    if not member_ids and not session.is_active:
        member_ids = list(session.session_orders.values_list("order_id", flat=True))
    rows = (
        PackingProgress.objects.filter(session=session, order_id__in=member_ids)
        .select_related("product")
        .order_by("order_id", "product__name", "id")
    )
    by_order = defaultdict(list)
    for row in rows:
        by_order[row.order_id].append(
            {
                "product_id": row.product_id,
                "product_name": row.product.name,
                "sku": row.product.sku,
                "quantity_needed": row.quantity_needed,
                "quantity_packed": row.quantity_packed,
                "is_complete": row.is_complete,
            }
        )
    orders = []
    for order in Order.objects.filter(pk__in=member_ids).order_by("id"):
        items = by_order.get(order.id, [])
        orders.append(
            {
                "order_id": order.id,
                "number": order.number,
                "customer_name": order.customer_name,
                "status": order.status,
                "items": items,
                "is_complete": all(i["is_complete"] for i in items),
            }
        )

    packed = dict(
        PackingProgress.objects.filter(session=session, order_id__in=member_ids)
        .values("product_id")
        .annotate(total=Sum("quantity_packed"))
        .values_list("product_id", "total")
    )
    basket = [
        {
            "product_id": item.product_id,
            "product_name": item.product.name,
            "quantity_picked": item.quantity_picked,
            "quantity_packed": packed.get(item.product_id) or 0,
            "remaining": item.quantity_picked - (packed.get(item.product_id) or 0),
        }
        for item in PickingSessionItem.objects.filter(session=session).select_related("product").order_by("id")
    ]
    return {"session": session, "orders": orders, "basket": basket}
