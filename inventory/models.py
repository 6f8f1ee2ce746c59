"""Inventory ledger.

Every change to a product's stock is an ``InventoryMovement`` row. Rows are
append-only; ``catalog.Product.stock`` is a cached projection of their sum.
"""

from common.choices import MovementKind
from django.conf import settings
from django.db import models


class LedgerImmutable(Exception):
    """Raised when code tries to rewrite or remove a ledger row."""


class InventoryMovement(models.Model):
    KIND_RECEIPT = MovementKind.RECEIPT
    KIND_ENTERED_READY_TO_SHIP = MovementKind.ENTERED_READY_TO_SHIP
    KIND_REVERTED = MovementKind.REVERTED
    KIND_CHOICES = MovementKind.choices

    store = models.ForeignKey("stores.Store", related_name="inventory_movements", on_delete=models.PROTECT)
    product = models.ForeignKey("catalog.Product", related_name="movements", on_delete=models.PROTECT)
    quantity = models.IntegerField()  # signed: +receipt/restore, -deduction
    kind = models.CharField(max_length=32, choices=KIND_CHOICES)
    order = models.ForeignKey(
        "orders.Order", null=True, blank=True, related_name="inventory_movements", on_delete=models.PROTECT
    )
    line_item = models.ForeignKey(
        "orders.OrderLineItem", null=True, blank=True, related_name="inventory_movements", on_delete=models.PROTECT
    )
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    stock_after = models.IntegerField()
    reference = models.CharField(max_length=120, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(name="movement_non_zero", condition=~models.Q(quantity=0)),
            models.UniqueConstraint(
                fields=["line_item", "kind"],
                condition=models.Q(line_item__isnull=False),
                name="one_movement_per_line_item_and_kind",
            ),
        ]
        indexes = [
            models.Index(fields=["product", "created_at"], name="movement_product_created_idx"),
            models.Index(fields=["order"], name="movement_order_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.kind} {self.quantity:+d} for product {self.product_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerImmutable("Inventory movements cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerImmutable("Inventory movements cannot be deleted")
