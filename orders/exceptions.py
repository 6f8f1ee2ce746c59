"""Errors raised by the order state machine."""

from common.exceptions import DomainError


class OrderError(DomainError):
    code = "order_error"
    default_detail = "Unable to update order."


class InvalidTransition(OrderError):
    code = "invalid_transition"
    default_detail = "The order cannot move to the requested status."


class OrderLocked(OrderError):
    code = "order_locked"
    default_detail = "Line items can no longer be edited for this order."


class InvalidOrderData(OrderError):
    code = "invalid_order_data"
    default_detail = "The order payload is invalid."


class ConcurrentModification(OrderError):
    """Another writer changed the order first. Re-read it and retry if still valid."""

    code = "concurrent_modification"
    status_code = 409
    default_detail = "The order was modified concurrently; reload it and retry."
