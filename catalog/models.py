"""Catalog app models.

Products are store-scoped. ``stock`` is a cached projection of the inventory
ledger and is written only by ``inventory.services``.
"""

from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Product(TimeStampedModel):
    store = models.ForeignKey("stores.Store", related_name="products", on_delete=models.CASCADE)
    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=64)
    # No non-negative check: shipping into negative stock is flagged, not blocked.
    stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name", "id"]
        constraints = [
            models.UniqueConstraint(fields=["store", "sku"], name="unique_sku_per_store"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.sku} ({self.name}) stock={self.stock}"
