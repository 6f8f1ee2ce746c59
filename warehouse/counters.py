"""Bounded counters for picking and packing.

Operators on separate devices increment the same rows at the same time, so a
counter write is never a read-modify-write in Python. ``apply_increment``
tries the strategies named in ``settings.PACKING_INCREMENT_STRATEGIES`` in
order:

``conditional_update``
    One UPDATE whose WHERE clause carries the bounds and the session/order
    preconditions; the database evaluates and applies it under the row lock.
``row_lock``
    SELECT ... FOR UPDATE on the session, order and counter row, then a
    validated write while the locks are held.
``compare_and_swap``
    Read value and version, validate, write only if the version is unchanged.
    Retries with backoff up to ``PACKING_CAS_MAX_ATTEMPTS`` before raising
    ``TooManyConflicts``.

A strategy that cannot run raises ``StrategyUnavailable`` and the next one is
tried. All strategies reach the same final state and touch the session's
``last_activity_at`` inside the same transaction.
"""

import logging
import time
from dataclasses import dataclass, field

from django.conf import settings
from django.db import NotSupportedError, models, transaction
from django.db.models import Exists, F
from django.utils import timezone
from orders.models import Order

from .exceptions import StrategyUnavailable, TooManyConflicts
from .models import PickingSession

logger = logging.getLogger("fulfillment.warehouse")


@dataclass(frozen=True)
class CounterTarget:
    """Which counter row to move, its bounds and the preconditions it needs."""

    model: type[models.Model]
    lookup: dict
    value_field: str
    bound_field: str
    session_id: int
    session_status: str
    over_error: type[Exception]
    under_error: type[Exception]
    not_allowed_error: type[Exception]
    order_id: int | None = None
    payload: dict = field(default_factory=dict)

    def rows(self):
        return self.model.objects.filter(**self.lookup)

    def guards(self) -> list:
        """Precondition subqueries evaluated inside the counter UPDATE."""

        conditions = [Exists(PickingSession.objects.filter(pk=self.session_id, status=self.session_status))]
        if self.order_id is not None:
            conditions.append(Exists(Order.objects.filter(pk=self.order_id, status=Order.STATUS_IN_PREPARATION)))
        return conditions


def _touch_session(target: CounterTarget, now) -> None:
    """Record activity on the session, requiring it to still be in the expected status.

    Taking the session row lock first keeps the lock order (session, then
    counter row) identical to completion and abandonment.
    """

    touched = PickingSession.objects.filter(pk=target.session_id, status=target.session_status).update(
        last_activity_at=now, stale_flagged_at=None, updated_at=now
    )
    if not touched:
        diagnose_rejection(target, 0)


def diagnose_rejection(target: CounterTarget, delta: int):
    """Raise the specific error explaining why ``delta`` cannot be applied.

    Returns ``None`` when nothing is wrong any more (the row moved between the
    rejected write and this read).
    """

    session_status = (
        PickingSession.objects.filter(pk=target.session_id).values_list("status", flat=True).first()
    )
    if session_status is None:
        raise PickingSession.DoesNotExist("Picking session not found.")
    if session_status != target.session_status:
        raise target.not_allowed_error(
            f"Session is {session_status}; expected {target.session_status}.",
            reason="session_status",
            session_status=session_status,
            **target.payload,
        )
    if target.order_id is not None:
        order_status = Order.objects.filter(pk=target.order_id).values_list("status", flat=True).first()
        if order_status != Order.STATUS_IN_PREPARATION:
            raise target.not_allowed_error(
                f"Order is {order_status}; only orders in preparation can be packed.",
                reason="order_status",
                order_status=order_status,
                **target.payload,
            )
    if not delta:
        return None
    row = target.rows().values(target.value_field, target.bound_field, "sealed_at").first()
    if row is None:
        raise target.model.DoesNotExist(f"{target.model.__name__} not found.")
    if row["sealed_at"] is not None:
        raise target.not_allowed_error("This counter is closed.", reason="sealed", **target.payload)
    current, bound = row[target.value_field], row[target.bound_field]
    _check_bounds(target, current, bound, delta)
    return None


def _check_bounds(target: CounterTarget, current: int, bound: int, delta: int) -> None:
    candidate = current + delta
    if candidate > bound:
        raise target.over_error(current=current, needed=bound, requested=delta, **target.payload)
    if candidate < 0:
        raise target.under_error(current=current, needed=bound, requested=delta, **target.payload)


def conditional_update(target: CounterTarget, delta: int, now) -> None:
    _touch_session(target, now)
    bounds = {f"{target.value_field}__lte": F(target.bound_field) - delta}
    if delta < 0:
        bounds[f"{target.value_field}__gte"] = -delta
    try:
        updated = (
            target.rows()
            .filter(*target.guards(), sealed_at__isnull=True, **bounds)
            .update(**{target.value_field: F(target.value_field) + delta}, version=F("version") + 1, updated_at=now)
        )
    except NotSupportedError as exc:
        raise StrategyUnavailable(str(exc))
    if updated != 1:
        diagnose_rejection(target, delta)
        raise TooManyConflicts(**target.payload)


def row_lock(target: CounterTarget, delta: int, now) -> None:
    try:
        session = PickingSession.objects.select_for_update().filter(pk=target.session_id).first()
        if target.order_id is not None:
            list(Order.objects.select_for_update().filter(pk=target.order_id).values_list("pk", flat=True))
        row = target.rows().select_for_update().first()
    except NotSupportedError as exc:
        raise StrategyUnavailable(str(exc))
    if session is None or session.status != target.session_status or row is None or row.sealed_at is not None:
        diagnose_rejection(target, delta)
        raise TooManyConflicts(**target.payload)
    if target.order_id is not None and not Order.objects.filter(
        pk=target.order_id, status=Order.STATUS_IN_PREPARATION
    ).exists():
        diagnose_rejection(target, delta)
    current, bound = getattr(row, target.value_field), getattr(row, target.bound_field)
    _check_bounds(target, current, bound, delta)
    target.model.objects.filter(pk=row.pk).update(
        **{target.value_field: current + delta}, version=row.version + 1, updated_at=now
    )
    PickingSession.objects.filter(pk=target.session_id).update(
        last_activity_at=now, stale_flagged_at=None, updated_at=now
    )


def read_for_swap(target: CounterTarget):
    """Snapshot ``(pk, value, bound, version, sealed_at)`` of the counter row, or ``None``."""

    return (
        target.rows()
        .values_list("pk", target.value_field, target.bound_field, "version", "sealed_at")
        .first()
    )


def compare_and_swap(target: CounterTarget, delta: int, now) -> None:
    _touch_session(target, now)
    attempts = max(1, int(settings.PACKING_CAS_MAX_ATTEMPTS))
    backoff = max(0, int(settings.PACKING_CAS_BACKOFF_MS)) / 1000.0
    for attempt in range(1, attempts + 1):
        snapshot = read_for_swap(target)
        if snapshot is None or snapshot[4] is not None:
            diagnose_rejection(target, delta)
            raise TooManyConflicts(**target.payload)
        pk, current, bound, version, _ = snapshot
        _check_bounds(target, current, bound, delta)
        swapped = (
            target.model.objects.filter(pk=pk, version=version, sealed_at__isnull=True)
            .filter(*target.guards())
            .update(**{target.value_field: current + delta}, version=version + 1, updated_at=now)
        )
        if swapped == 1:
            return
        diagnose_rejection(target, 0)
        logger.info(
            "packing_cas_conflict",
            extra={"event": "packing_cas_conflict", "attempt": attempt, "session_id": target.session_id},
        )
        if backoff:
            time.sleep(backoff * attempt)
    raise TooManyConflicts(attempts=attempts, **target.payload)


STRATEGIES = {
    "conditional_update": conditional_update,
    "row_lock": row_lock,
    "compare_and_swap": compare_and_swap,
}


def enabled_strategies() -> list[str]:
    names = settings.PACKING_INCREMENT_STRATEGIES
    if isinstance(names, str):
        names = [n.strip() for n in names.split(",")]
    return [n for n in names if n]


def apply_increment(target: CounterTarget, delta: int) -> str:
    """Move the counter by ``delta`` and return the name of the strategy that did it."""

    for name in enabled_strategies():
        strategy = STRATEGIES[name]
        try:
            with transaction.atomic():
                strategy(target, delta, timezone.now())
            return name
        except StrategyUnavailable as exc:
            logger.warning(
                "packing_strategy_unavailable",
                extra={"event": "packing_strategy_unavailable", "strategy": name, "reason": exc.detail},
            )
    raise StrategyUnavailable(strategies=enabled_strategies())
