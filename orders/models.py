from common.choices import OrderStatus
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Order(TimeStampedModel):
    """A customer purchase moving through the fulfillment lifecycle.

    ``status`` and ``version`` are written only by ``orders.services``; every
    write is conditioned on the version read at the start of the call.
    """

    STATUS_PENDING = OrderStatus.PENDING
    STATUS_CONFIRMED = OrderStatus.CONFIRMED
    STATUS_IN_PREPARATION = OrderStatus.IN_PREPARATION
    STATUS_READY_TO_SHIP = OrderStatus.READY_TO_SHIP
    STATUS_SHIPPED = OrderStatus.SHIPPED
    STATUS_DELIVERED = OrderStatus.DELIVERED
    STATUS_CANCELLED = OrderStatus.CANCELLED
    STATUS_REJECTED = OrderStatus.REJECTED
    STATUS_INCIDENT = OrderStatus.INCIDENT
    STATUS_NOT_DELIVERED = OrderStatus.NOT_DELIVERED
    STATUS_RETURNED = OrderStatus.RETURNED
    STATUS_CHOICES = OrderStatus.choices

    store = models.ForeignKey("stores.Store", related_name="orders", on_delete=models.CASCADE)
    number = models.CharField(max_length=32, blank=True, db_index=True)
    external_id = models.CharField(max_length=64, blank=True)
    customer_name = models.CharField(max_length=200, blank=True)
    customer_phone = models.CharField(max_length=32, blank=True)
    carrier_reference = models.CharField(max_length=64, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    version = models.PositiveIntegerField(default=1)
    status_changed_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    in_preparation_at = models.DateTimeField(null=True, blank=True)
    ready_to_ship_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["store", "status", "created_at"], name="order_store_status_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["store", "external_id"],
                condition=~models.Q(external_id=""),
                name="unique_external_order_per_store",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.id} store={self.store_id} status={self.status} v{self.version}"


class OrderLineItem(TimeStampedModel):
    """One product within an order.

    ``stock_deducted`` and ``stock_restored`` each flip false->true at most
    once; they are claimed in the same transaction as the ledger write.
    """

    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="order_items", on_delete=models.PROTECT)
    product_name = models.CharField(max_length=200, blank=True)
    sku = models.CharField(max_length=64, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    stock_deducted = models.BooleanField(default=False)
    stock_deducted_at = models.DateTimeField(null=True, blank=True)
    stock_restored = models.BooleanField(default=False)
    stock_restored_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["order", "product"], name="unique_product_per_order"),
            models.CheckConstraint(name="line_item_quantity_positive", condition=models.Q(quantity__gte=1)),
            models.CheckConstraint(
                name="restore_requires_deduction",
                condition=models.Q(stock_restored=False) | models.Q(stock_deducted=True),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderLineItem#{self.id} order={self.order_id} product={self.product_id} qty={self.quantity}"


class OrderStatusChange(models.Model):
    """Audit row appended for every status transition."""

    order = models.ForeignKey(Order, related_name="status_changes", on_delete=models.CASCADE)
    from_status = models.CharField(max_length=16, choices=OrderStatus.choices)
    to_status = models.CharField(max_length=16, choices=OrderStatus.choices)
    version = models.PositiveIntegerField()
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    note = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["order", "version"], name="one_status_change_per_order_version"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.order_id} {self.from_status}->{self.to_status} v{self.version}"
