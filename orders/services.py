"""Order state machine and order ingestion.

``transition_order`` is the only way an order changes status. It writes the
new status, bumps ``version`` and, when the order crosses the
stock-commitment boundary, drives ``inventory.services.apply_movement`` for
each line item, all inside one transaction.
"""

import logging
from collections import OrderedDict

from catalog.models import Product
from common.db import atomic_with_timeout
from django.db import IntegrityError
from django.db.models import F
from django.utils import timezone
from inventory.models import InventoryMovement
from inventory.services import apply_movement

from .exceptions import ConcurrentModification, InvalidOrderData, InvalidTransition, OrderLocked
from .models import Order, OrderLineItem, OrderStatusChange
from .transitions import (
    EDITABLE_STATUSES,
    STATUS_TIMESTAMP_FIELDS,
    STOCK_COMMITTED_STATUSES,
    STOCK_RESTORING_STATUSES,
    can_transition,
)

logger = logging.getLogger("fulfillment.orders")

PATCHABLE_FIELDS = ("customer_name", "customer_phone", "carrier_reference")


def _order_id(order) -> int:
    return int(order.pk if isinstance(order, Order) else order)


def _actor_or_none(actor):
    return actor if getattr(actor, "pk", None) else None


def _in_open_session(order_id: int) -> bool:
    """Whether a picking session still counts this order (membership not released)."""

    return Order.objects.filter(pk=order_id, session_memberships__released_at__isnull=True).exists()


def transition_order(*, order, target_status: str, actor=None, expected_version: int | None = None, note: str = "") -> Order:
    """Move ``order`` to ``target_status``.

    Raises ``InvalidTransition`` when the graph forbids the move and
    ``ConcurrentModification`` when the order's version is not the one read at
    the start of the call (or ``expected_version`` when given). Requesting the
    current status is a no-op that returns the order unchanged.
    """

    order_id = _order_id(order)
    if target_status not in dict(Order.STATUS_CHOICES):
        raise InvalidTransition(f"Unknown status '{target_status}'.", order_id=order_id, to_status=target_status)

    with atomic_with_timeout():
        current = Order.objects.get(pk=order_id)
        read_version = current.version
        if expected_version is not None and int(expected_version) != read_version:
            raise ConcurrentModification(
                order_id=order_id, expected_version=int(expected_version), current_version=read_version
            )
        if current.status == target_status:
            return current
        if not can_transition(current.status, target_status):
            raise InvalidTransition(
                f"Cannot move order from {current.status} to {target_status}.",
                order_id=order_id,
                from_status=current.status,
                to_status=target_status,
            )
        if target_status == Order.STATUS_CONFIRMED and _in_open_session(order_id):
            raise InvalidTransition(
                "The order is still in a picking session; remove it from the session instead.",
                order_id=order_id,
                from_status=current.status,
                to_status=target_status,
                reason="in_active_session",
            )

        now = timezone.now()
        changes = {
            "status": target_status,
            "version": F("version") + 1,
            "status_changed_at": now,
            "updated_at": now,
        }
        stamp_field = STATUS_TIMESTAMP_FIELDS.get(target_status)
        if stamp_field:
            changes[stamp_field] = now
        updated = Order.objects.filter(pk=order_id, version=read_version, status=current.status).update(**changes)
        if updated != 1:
            raise ConcurrentModification(order_id=order_id, expected_version=read_version)

        if target_status in STOCK_COMMITTED_STATUSES:
            _deduct_line_items(current, actor=actor, now=now)
        elif target_status in STOCK_RESTORING_STATUSES:
            _restore_line_items(current, actor=actor, now=now)

        OrderStatusChange.objects.create(
            order_id=order_id,
            from_status=current.status,
            to_status=target_status,
            version=read_version + 1,
            actor=_actor_or_none(actor),
            note=note,
        )
        result = Order.objects.get(pk=order_id)

    logger.info(
        "order_status_changed",
        extra={
            "event": "order_status_changed",
            "order_id": order_id,
            "store_id": result.store_id,
            "actor_id": getattr(actor, "pk", None),
            "status_from": current.status,
            "status_to": result.status,
            "version": result.version,
        },
    )
    return result


def _deduct_line_items(order: Order, *, actor, now) -> None:
    for item in OrderLineItem.objects.filter(order_id=order.pk, stock_deducted=False).order_by("id"):
        claimed = OrderLineItem.objects.filter(pk=item.pk, stock_deducted=False).update(
            stock_deducted=True, stock_deducted_at=now, updated_at=now
        )
        if not claimed:
            continue
        apply_movement(
            product_id=item.product_id,
            quantity=-int(item.quantity),
            kind=InventoryMovement.KIND_ENTERED_READY_TO_SHIP,
            order_id=order.pk,
            line_item_id=item.pk,
            actor=actor,
            reference=order.number or f"order:{order.pk}",
        )


def _restore_line_items(order: Order, *, actor, now) -> None:
    pending = OrderLineItem.objects.filter(order_id=order.pk, stock_deducted=True, stock_restored=False)
    for item in pending.order_by("id"):
        claimed = OrderLineItem.objects.filter(pk=item.pk, stock_deducted=True, stock_restored=False).update(
            stock_restored=True, stock_restored_at=now, updated_at=now
        )
        if not claimed:
            continue
        apply_movement(
            product_id=item.product_id,
            quantity=int(item.quantity),
            kind=InventoryMovement.KIND_REVERTED,
            order_id=order.pk,
            line_item_id=item.pk,
            actor=actor,
            reference=order.number or f"order:{order.pk}",
        )


def _normalize_items(*, store, items) -> "OrderedDict[int, tuple[Product, int]]":
    """Validate line item input and merge repeated products."""

    if not items:
        raise InvalidOrderData("An order needs at least one line item.")
    merged: OrderedDict[int, int] = OrderedDict()
    for raw in items:
        try:
            product_id = int(raw["product_id"])
            quantity = int(raw["quantity"])
        except (KeyError, TypeError, ValueError):
            raise InvalidOrderData("Each line item needs an integer product_id and quantity.")
        if quantity <= 0:
            raise InvalidOrderData("Line item quantity must be positive.", product_id=product_id)
        merged[product_id] = merged.get(product_id, 0) + quantity
    products = {p.id: p for p in Product.objects.filter(store=store, id__in=list(merged))}
    missing = [pid for pid in merged if pid not in products]
    if missing:
        raise InvalidOrderData("Unknown products for this store.", product_ids=missing)
    return OrderedDict((pid, (products[pid], qty)) for pid, qty in merged.items())


def _write_items(order: Order, normalized) -> None:
    OrderLineItem.objects.bulk_create(
        [
            OrderLineItem(order=order, product=product, product_name=product.name, sku=product.sku, quantity=qty)
            for product, qty in normalized.values()
        ]
    )


def create_order(
    *,
    store,
    items,
    number: str = "",
    external_id: str = "",
    customer_name: str = "",
    customer_phone: str = "",
    carrier_reference: str = "",
    actor=None,
) -> Order:
    """Ingest a new order. Orders always enter the lifecycle as ``pending``."""

    normalized = _normalize_items(store=store, items=items)
    try:
        with atomic_with_timeout():
            order = Order.objects.create(
                store=store,
                number=number,
                external_id=external_id,
                customer_name=customer_name,
                customer_phone=customer_phone,
                carrier_reference=carrier_reference,
                status=Order.STATUS_PENDING,
            )
            _write_items(order, normalized)
            if not number:
                order.number = f"ORD-{int(order.id):06d}"
                order.save(update_fields=["number"])
    except IntegrityError:
        raise InvalidOrderData("An order with this external id already exists.", external_id=external_id)
    logger.info(
        "order_created",
        extra={
            "event": "order_created",
            "order_id": order.id,
            "store_id": store.id,
            "actor_id": getattr(actor, "pk", None),
            "line_items": len(normalized),
        },
    )
    return order


def replace_line_items(*, order, items, actor=None, expected_version: int | None = None) -> Order:
    """Replace an order's line items.

    Raises ``OrderLocked`` once any item has had stock deducted, or when the
    order has left the editable statuses or still belongs to a picking session.
    """

    order_id = _order_id(order)
    with atomic_with_timeout():
        current = Order.objects.select_for_update().get(pk=order_id)
        if expected_version is not None and int(expected_version) != current.version:
            raise ConcurrentModification(
                order_id=order_id, expected_version=int(expected_version), current_version=current.version
            )
        if current.items.filter(stock_deducted=True).exists():
            raise OrderLocked("Stock was already deducted for this order.", order_id=order_id)
        if current.status not in EDITABLE_STATUSES:
            raise OrderLocked(f"Line items cannot change while the order is {current.status}.", order_id=order_id)
        if _in_open_session(order_id):
            raise OrderLocked("Line items cannot change while the order is in a picking session.", order_id=order_id)
        normalized = _normalize_items(store=current.store, items=items)
        current.items.all().delete()
        _write_items(current, normalized)
        Order.objects.filter(pk=order_id).update(version=F("version") + 1, updated_at=timezone.now())
        result = Order.objects.get(pk=order_id)
    logger.info(
        "order_items_replaced",
        extra={"event": "order_items_replaced", "order_id": order_id, "actor_id": getattr(actor, "pk", None)},
    )
    return result


def patch_order(
    *,
    order,
    fields: dict | None = None,
    items=None,
    status: str | None = None,
    actor=None,
    expected_version: int | None = None,
) -> Order:
    """Apply an "order updated" event: plain fields, then items, then status.

    All parts commit together or not at all.
    """

    order_id = _order_id(order)
    fields = {k: v for k, v in (fields or {}).items() if k in PATCHABLE_FIELDS}
    with atomic_with_timeout():
        current = Order.objects.get(pk=order_id)
        version = current.version
        if expected_version is not None and int(expected_version) != version:
            raise ConcurrentModification(order_id=order_id, expected_version=int(expected_version), current_version=version)
        if fields:
            updated = Order.objects.filter(pk=order_id, version=version).update(
                **fields, version=F("version") + 1, updated_at=timezone.now()
            )
            if updated != 1:
                raise ConcurrentModification(order_id=order_id, expected_version=version)
            version += 1
        if items is not None:
            current = replace_line_items(order=order_id, items=items, actor=actor, expected_version=version)
            version = current.version
        if status:
            current = transition_order(order=order_id, target_status=status, actor=actor, expected_version=version)
        return Order.objects.get(pk=order_id)
