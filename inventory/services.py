"""Stock mutation: the single write path for product stock and the ledger.

``apply_movement`` is called by the order state machine when an order crosses
the stock-commitment boundary, and by ``receive_stock`` for inbound goods.
Nothing else writes ``Product.stock``.
"""

import logging

from catalog.models import Product
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import InventoryMovement

logger = logging.getLogger("fulfillment.inventory")


class MovementError(Exception):
    pass


@transaction.atomic
def apply_movement(
    *,
    product_id: int,
    quantity: int,
    kind: str,
    order_id: int | None = None,
    line_item_id: int | None = None,
    actor=None,
    reference: str = "",
) -> InventoryMovement:
    """Append one ledger row and move the cached stock by the same signed amount.

    Negative resulting stock is logged as an anomaly and allowed.
    """

    if quantity == 0:
        raise MovementError("Movement quantity must be non-zero")
    updated = Product.objects.filter(pk=product_id).update(stock=F("stock") + quantity, updated_at=timezone.now())
    if not updated:
        raise MovementError("Product not found")
    # The UPDATE above holds the row lock until commit, so this read is ours.
    store_id, stock_after = Product.objects.values_list("store_id", "stock").get(pk=product_id)
    movement = InventoryMovement.objects.create(
        store_id=store_id,
        product_id=product_id,
        quantity=quantity,
        kind=kind,
        order_id=order_id,
        line_item_id=line_item_id,
        actor=actor if getattr(actor, "pk", None) else None,
        stock_after=stock_after,
        reference=reference,
    )
    logger.info(
        "stock_movement_applied",
        extra={
            "event": "stock_movement_applied",
            "movement_id": movement.id,
            "product_id": product_id,
            "order_id": order_id,
            "kind": kind,
            "quantity": quantity,
            "stock_after": stock_after,
        },
    )
    if stock_after < 0:
        logger.warning(
            "stock_negative",
            extra={"event": "stock_negative", "product_id": product_id, "order_id": order_id, "stock": stock_after},
        )
    return movement


def receive_stock(*, product_id: int, quantity: int, reference: str = "", actor=None) -> InventoryMovement:
    """Book inbound units (merchandise receipt, opening balance)."""

    if quantity <= 0:
        raise MovementError("Received quantity must be positive")
    return apply_movement(
        product_id=product_id,
        quantity=quantity,
        kind=InventoryMovement.KIND_RECEIPT,
        actor=actor,
        reference=reference,
    )
