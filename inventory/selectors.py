"""Read-side queries over the inventory ledger."""

from catalog.models import Product
from django.db.models import Sum
from django.db.models.functions import Coalesce

from .models import InventoryMovement


def ledger_balance(*, product_id: int) -> int:
    agg = InventoryMovement.objects.filter(product_id=product_id).aggregate(total=Coalesce(Sum("quantity"), 0))
    return int(agg["total"])


def stock_drift_report(*, store_id: int, only_anomalies: bool = False) -> list[dict]:
    """Compare each product's cached stock with the sum of its ledger rows.

    A row is an anomaly when the two disagree (drift) or the stock is negative.
    Reporting is best-effort: it reads committed data without locking.
    """

    qs = (
        Product.objects.filter(store_id=store_id)
        .annotate(ledger_stock=Coalesce(Sum("movements__quantity"), 0))
        .order_by("sku", "id")
    )
    rows = []
    for product in qs:
        drift = int(product.stock) - int(product.ledger_stock)
        negative = product.stock < 0
        if only_anomalies and not drift and not negative:
            continue
        rows.append(
            {
                "product_id": product.id,
                "sku": product.sku,
                "cached_stock": int(product.stock),
                "ledger_stock": int(product.ledger_stock),
                "drift": drift,
                "negative": negative,
            }
        )
    return rows


def movements_for_order(*, order_id: int):
    return InventoryMovement.objects.filter(order_id=order_id).order_by("created_at", "id")
