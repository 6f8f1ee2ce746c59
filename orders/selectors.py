from django.db.models import QuerySet

from .models import Order


def orders_for_store(*, store_id: int) -> QuerySet[Order]:
    return Order.objects.filter(store_id=store_id).prefetch_related("items")


def orders_ready_to_ship(*, store_id: int) -> QuerySet[Order]:
    """Orders waiting for carrier pickup, oldest first."""

    return (
        Order.objects.filter(store_id=store_id, status=Order.STATUS_READY_TO_SHIP)
        .prefetch_related("items")
        .order_by("ready_to_ship_at", "id")
    )


def order_detail(*, store_id: int, order_id: int) -> Order:
    return (
        Order.objects.filter(store_id=store_id)
        .prefetch_related("items", "status_changes")
        .get(pk=order_id)
    )
