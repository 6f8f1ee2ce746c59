"""Errors raised by picking sessions and the packing counters."""

from common.exceptions import DomainError


class WarehouseError(DomainError):
    code = "warehouse_error"
    default_detail = "Unable to update the picking session."


class OrderNotEligible(WarehouseError):
    """Payload ``offenders`` lists every rejected order with a reason."""

    code = "order_not_eligible"
    default_detail = "Some orders cannot be added to a picking session."


class InvalidSessionState(WarehouseError):
    code = "invalid_session_state"
    default_detail = "The session is not in a state that allows this operation."


class InvalidQuantity(WarehouseError):
    code = "invalid_quantity"
    default_detail = "Quantity must be a non-zero integer."


class OverPick(WarehouseError):
    code = "over_pick"
    default_detail = "Picking would exceed the quantity needed."


class UnderPick(WarehouseError):
    code = "under_pick"
    default_detail = "Picked quantity cannot go below zero."


class IncompletePicking(WarehouseError):
    code = "incomplete_picking"
    default_detail = "Some products are not fully picked."


class OverPack(WarehouseError):
    code = "over_pack"
    default_detail = "Packing would exceed the quantity needed for this order."


class UnderPack(WarehouseError):
    code = "under_pack"
    default_detail = "Packed quantity cannot go below zero."


class PackingNotAllowed(WarehouseError):
    code = "packing_not_allowed"
    default_detail = "The session or order does not accept packing right now."


class IncompletePacking(WarehouseError):
    """Payload ``shortages`` lists every (order, product) still short."""

    code = "incomplete_packing"
    default_detail = "Some orders are not fully packed."


class SessionCompletionFailed(WarehouseError):
    code = "session_completion_failed"
    status_code = 409
    default_detail = "An order in the session could not be moved to ready_to_ship; nothing was changed."


class TooManyConflicts(WarehouseError):
    code = "too_many_conflicts"
    status_code = 409
    default_detail = "The counter is under heavy contention; retry the request."


class StrategyUnavailable(WarehouseError):
    """A counter strategy cannot run on this deployment; the next one is tried."""

    code = "strategy_unavailable"
    status_code = 503
    default_detail = "No counter update strategy is available."
