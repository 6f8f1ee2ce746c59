"""Shared enumerations and choices used across apps."""

from django.db import models


class OrderStatus(models.TextChoices):
    """Lifecycle statuses for orders."""

    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    IN_PREPARATION = "in_preparation", "In preparation"
    READY_TO_SHIP = "ready_to_ship", "Ready to ship"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    REJECTED = "rejected", "Rejected"
    INCIDENT = "incident", "Incident"
    NOT_DELIVERED = "not_delivered", "Not delivered"
    RETURNED = "returned", "Returned"


class MovementKind(models.TextChoices):
    """Why a ledger row exists. Order-driven kinds are tagged by the status that caused them."""

    RECEIPT = "receipt", "Receipt"
    ENTERED_READY_TO_SHIP = "entered_ready_to_ship", "Entered ready to ship"
    REVERTED = "reverted", "Reverted"


class SessionStatus(models.TextChoices):
    """Statuses for warehouse picking sessions."""

    PICKING = "picking", "Picking"
    PACKING = "packing", "Packing"
    COMPLETED = "completed", "Completed"
    ABANDONED = "abandoned", "Abandoned"
