"""Order status graph.

Statuses move forward along the fulfillment path; cancellation, rejection,
incidents and returns are the only side branches.
"""

from common.choices import OrderStatus

S = OrderStatus

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.READY_TO_SHIP, S.CANCELLED, S.REJECTED}),
    S.CONFIRMED: frozenset({S.IN_PREPARATION, S.READY_TO_SHIP, S.CANCELLED, S.REJECTED}),
    # Back to confirmed when a picking session is abandoned.
    S.IN_PREPARATION: frozenset({S.READY_TO_SHIP, S.CONFIRMED, S.CANCELLED}),
    S.READY_TO_SHIP: frozenset({S.SHIPPED, S.CANCELLED}),
    S.SHIPPED: frozenset({S.DELIVERED, S.INCIDENT, S.CANCELLED}),
    S.INCIDENT: frozenset({S.SHIPPED, S.DELIVERED, S.NOT_DELIVERED}),
    S.NOT_DELIVERED: frozenset({S.RETURNED}),
    S.DELIVERED: frozenset({S.RETURNED}),
    S.CANCELLED: frozenset(),
    S.REJECTED: frozenset(),
    S.RETURNED: frozenset(),
}

STOCK_COMMITTED_STATUSES = frozenset({S.READY_TO_SHIP, S.SHIPPED, S.DELIVERED})
STOCK_RESTORING_STATUSES = frozenset({S.CANCELLED, S.REJECTED})
EDITABLE_STATUSES = frozenset({S.PENDING, S.CONFIRMED})

STATUS_TIMESTAMP_FIELDS = {
    S.CONFIRMED: "confirmed_at",
    S.IN_PREPARATION: "in_preparation_at",
    S.READY_TO_SHIP: "ready_to_ship_at",
    S.SHIPPED: "shipped_at",
    S.DELIVERED: "delivered_at",
    S.CANCELLED: "cancelled_at",
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())
