"""Picking sessions: batches of confirmed orders worked by warehouse operators.

Counter rows (``PickingSessionItem.quantity_picked`` and
``PackingProgress.quantity_packed``) are written only through
``warehouse.counters``. ``sealed_at`` is set when a row stops accepting
increments (picking finished, session completed or abandoned); the counter
updates are conditioned on it so an in-flight write cannot land on a closed row.
"""

from common.choices import SessionStatus
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class PickingSession(TimeStampedModel):
    STATUS_PICKING = SessionStatus.PICKING
    STATUS_PACKING = SessionStatus.PACKING
    STATUS_COMPLETED = SessionStatus.COMPLETED
    STATUS_ABANDONED = SessionStatus.ABANDONED
    STATUS_CHOICES = SessionStatus.choices
    ACTIVE_STATUSES = (STATUS_PICKING, STATUS_PACKING)

    store = models.ForeignKey("stores.Store", related_name="picking_sessions", on_delete=models.CASCADE)
    code = models.CharField(max_length=32)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PICKING, db_index=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, related_name="+", on_delete=models.SET_NULL
    )
    last_activity_at = models.DateTimeField()
    picking_started_at = models.DateTimeField(null=True, blank=True)
    picking_completed_at = models.DateTimeField(null=True, blank=True)
    packing_started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, related_name="+", on_delete=models.SET_NULL
    )
    abandoned_at = models.DateTimeField(null=True, blank=True)
    abandoned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, related_name="+", on_delete=models.SET_NULL
    )
    abandon_reason = models.CharField(max_length=200, blank=True)
    stale_flagged_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(fields=["store", "code"], name="unique_session_code_per_store"),
        ]
        indexes = [
            models.Index(fields=["store", "status", "last_activity_at"], name="session_store_status_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES


class PickingSessionOrder(models.Model):
    """Membership of an order in a session.

    ``released_at`` is set when the session completes or is abandoned, or the
    order is removed; an order has at most one unreleased membership.
    """

    session = models.ForeignKey(PickingSession, related_name="session_orders", on_delete=models.CASCADE)
    order = models.ForeignKey("orders.Order", related_name="session_memberships", on_delete=models.PROTECT)
    added_at = models.DateTimeField(auto_now_add=True)
    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["session", "order"], name="unique_order_per_session"),
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(released_at__isnull=True),
                name="one_active_session_per_order",
            ),
        ]


class PickingSessionItem(TimeStampedModel):
    """Aggregated demand for one product across every order in the session."""

    session = models.ForeignKey(PickingSession, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="+", on_delete=models.PROTECT)
    total_quantity_needed = models.PositiveIntegerField()
    quantity_picked = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=1)
    sealed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["session", "product"], name="unique_product_per_session"),
            models.CheckConstraint(
                name="picked_within_needed",
                condition=models.Q(quantity_picked__gte=0, quantity_picked__lte=models.F("total_quantity_needed")),
            ),
        ]


class PackingProgress(TimeStampedModel):
    """Units of one product placed into one order's container."""

    session = models.ForeignKey(PickingSession, related_name="packing_progress", on_delete=models.CASCADE)
    order = models.ForeignKey("orders.Order", related_name="packing_progress", on_delete=models.PROTECT)
    product = models.ForeignKey("catalog.Product", related_name="+", on_delete=models.PROTECT)
    quantity_needed = models.PositiveIntegerField()
    quantity_packed = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=1)
    sealed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["order_id", "id"]
        verbose_name_plural = "packing progress"
        constraints = [
            models.UniqueConstraint(fields=["session", "order", "product"], name="unique_packing_row"),
            models.CheckConstraint(
                name="packed_within_needed",
                condition=models.Q(quantity_packed__gte=0, quantity_packed__lte=models.F("quantity_needed")),
            ),
        ]

    @property
    def is_complete(self) -> bool:
        return self.quantity_packed >= self.quantity_needed


class SessionCodeSequence(models.Model):
    """Last session number handed out for a store on a given day."""

    store = models.ForeignKey("stores.Store", related_name="+", on_delete=models.CASCADE)
    day = models.DateField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["store", "day"], name="unique_code_sequence_per_store_day"),
        ]
