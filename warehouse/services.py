"""Picking session lifecycle.

``create_session`` batches confirmed orders, ``record_pick`` and
``increment_packed`` move the bounded counters, and ``complete_session``
hands every member order to the state machine at once. Order status changes
always go through ``orders.services.transition_order``.
"""

import logging
from datetime import timedelta

from common.db import atomic_with_timeout
from common.exceptions import DomainError
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Sum
from django.utils import timezone
from orders.models import Order, OrderLineItem
from orders.services import transition_order
from orders.transitions import can_transition

from .codes import allocate_session_code
from .counters import CounterTarget, apply_increment
from .exceptions import (
    IncompletePacking,
    IncompletePicking,
    InvalidQuantity,
    InvalidSessionState,
    OrderNotEligible,
    OverPack,
    OverPick,
    PackingNotAllowed,
    SessionCompletionFailed,
    UnderPack,
    UnderPick,
)
from .models import PackingProgress, PickingSession, PickingSessionItem, PickingSessionOrder

logger = logging.getLogger("fulfillment.warehouse")


def _pk(obj) -> int:
    return int(getattr(obj, "pk", obj))


def _actor_or_none(actor):
    return actor if getattr(actor, "pk", None) else None


def _check_delta(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value == 0:
        raise InvalidQuantity(requested=value)
    return value


def _lock_session(session_id: int) -> PickingSession:
    return PickingSession.objects.select_for_update().get(pk=session_id)


def _ineligible_orders(*, store, order_ids: list[int], orders: list[Order]) -> list[dict]:
    by_id = {o.pk: o for o in orders}
    busy = dict(
        PickingSessionOrder.objects.filter(order_id__in=order_ids, released_at__isnull=True).values_list(
            "order_id", "session__code"
        )
    )
    with_items = set(
        OrderLineItem.objects.filter(order_id__in=order_ids).values_list("order_id", flat=True).distinct()
    )
    offenders = []
    for order_id in order_ids:
        order = by_id.get(order_id)
        if order is None:
            offenders.append({"order_id": order_id, "reason": "not_found"})
        elif order_id in busy:
            offenders.append({"order_id": order_id, "reason": "in_active_session", "session_code": busy[order_id]})
        elif order.status != Order.STATUS_CONFIRMED:
            offenders.append({"order_id": order_id, "reason": "not_confirmed", "status": order.status})
        elif order_id not in with_items:
            offenders.append({"order_id": order_id, "reason": "no_line_items"})
    return offenders


def create_session(*, store, order_ids, actor=None) -> PickingSession:
    """Batch ``order_ids`` into a new picking session.

    All or nothing: if any order is not confirmed, belongs to another store or
    is already in an active session, ``OrderNotEligible`` lists every offender
    and nothing is written.
    """

    order_ids = list(dict.fromkeys(int(i) for i in order_ids))
    if not order_ids:
        raise OrderNotEligible("Select at least one order.", offenders=[])

    offenders = _ineligible_orders(
        store=store, order_ids=order_ids, orders=list(Order.objects.filter(store=store, pk__in=order_ids))
    )
    if offenders:
        raise OrderNotEligible(offenders=offenders)

    code = allocate_session_code(store_id=store.id)

    with atomic_with_timeout():
        orders = list(Order.objects.select_for_update().filter(store=store, pk__in=order_ids).order_by("pk"))
        offenders = _ineligible_orders(store=store, order_ids=order_ids, orders=orders)
        if offenders:
            raise OrderNotEligible(offenders=offenders)

        now = timezone.now()
        session = PickingSession.objects.create(
            store=store,
            code=code,
            status=PickingSession.STATUS_PICKING,
            created_by=_actor_or_none(actor),
            last_activity_at=now,
            picking_started_at=now,
        )
        try:
            with transaction.atomic():
                PickingSessionOrder.objects.bulk_create(
                    [PickingSessionOrder(session=session, order_id=o.pk) for o in orders]
                )
        except IntegrityError:
            raise OrderNotEligible(
                offenders=[{"order_id": o.pk, "reason": "in_active_session"} for o in orders]
            )

        lines = list(
            OrderLineItem.objects.filter(order_id__in=order_ids).values("order_id", "product_id", "quantity")
        )
        totals = (
            OrderLineItem.objects.filter(order_id__in=order_ids)
            .values("product_id")
            .annotate(total=Sum("quantity"))
            .order_by("product_id")
        )
        PickingSessionItem.objects.bulk_create(
            [
                PickingSessionItem(session=session, product_id=row["product_id"], total_quantity_needed=row["total"])
                for row in totals
            ]
        )
        PackingProgress.objects.bulk_create(
            [
                PackingProgress(
                    session=session,
                    order_id=line["order_id"],
                    product_id=line["product_id"],
                    quantity_needed=line["quantity"],
                )
                for line in lines
            ]
        )
        for order in orders:
            transition_order(
                order=order.pk,
                target_status=Order.STATUS_IN_PREPARATION,
                actor=actor,
                expected_version=order.version,
                note=f"picking session {code}",
            )

    logger.info(
        "picking_session_created",
        extra={
            "event": "picking_session_created",
            "session_id": session.id,
            "session_code": code,
            "store_id": store.id,
            "actor_id": getattr(actor, "pk", None),
            "order_count": len(orders),
            "product_count": len(totals),
        },
    )
    return session


def record_pick(*, session, product_id: int, delta: int = 1, actor=None) -> PickingSessionItem:
    """Move ``quantity_picked`` for one aggregated product by ``delta``."""

    session_id = _pk(session)
    delta = _check_delta(delta)
    target = CounterTarget(
        model=PickingSessionItem,
        lookup={"session_id": session_id, "product_id": int(product_id)},
        value_field="quantity_picked",
        bound_field="total_quantity_needed",
        session_id=session_id,
        session_status=PickingSession.STATUS_PICKING,
        over_error=OverPick,
        under_error=UnderPick,
        not_allowed_error=InvalidSessionState,
        payload={"session_id": session_id, "product_id": int(product_id)},
    )
    strategy = apply_increment(target, delta)
    item = PickingSessionItem.objects.get(session_id=session_id, product_id=product_id)
    logger.info(
        "picking_progress_updated",
        extra={
            "event": "picking_progress_updated",
            "session_id": session_id,
            "product_id": int(product_id),
            "delta": delta,
            "quantity_picked": item.quantity_picked,
            "strategy": strategy,
            "actor_id": getattr(actor, "pk", None),
        },
    )
    return item


def finish_picking(*, session, actor=None) -> PickingSession:
    """Close picking and open packing once every product is fully picked."""

    session_id = _pk(session)
    with atomic_with_timeout():
        locked = _lock_session(session_id)
        if locked.status != PickingSession.STATUS_PICKING:
            raise InvalidSessionState(session_id=session_id, status=locked.status)
        short = [
            {
                "product_id": row["product_id"],
                "total_quantity_needed": row["total_quantity_needed"],
                "quantity_picked": row["quantity_picked"],
                "missing": row["total_quantity_needed"] - row["quantity_picked"],
            }
            for row in locked.items.filter(quantity_picked__lt=F("total_quantity_needed"))
            .order_by("product_id")
            .values("product_id", "total_quantity_needed", "quantity_picked")
        ]
        if short:
            raise IncompletePicking(session_id=session_id, shortages=short)
        now = timezone.now()
        locked.items.update(sealed_at=now, updated_at=now)
        PickingSession.objects.filter(pk=session_id).update(
            status=PickingSession.STATUS_PACKING,
            picking_completed_at=now,
            packing_started_at=now,
            last_activity_at=now,
            updated_at=now,
        )
        result = PickingSession.objects.get(pk=session_id)
    logger.info(
        "picking_finished",
        extra={"event": "picking_finished", "session_id": session_id, "actor_id": getattr(actor, "pk", None)},
    )
    return result


def increment_packed(*, session, order_id: int, product_id: int, by_amount: int = 1, actor=None) -> PackingProgress:
    """Move one order's packed quantity for a product by ``by_amount``.

    The session must be packing and the order in preparation; both are checked
    in the same atomic step as the bounded write.
    """

    session_id = _pk(session)
    delta = _check_delta(by_amount)
    payload = {"session_id": session_id, "order_id": int(order_id), "product_id": int(product_id)}
    target = CounterTarget(
        model=PackingProgress,
        lookup={"session_id": session_id, "order_id": int(order_id), "product_id": int(product_id)},
        value_field="quantity_packed",
        bound_field="quantity_needed",
        session_id=session_id,
        session_status=PickingSession.STATUS_PACKING,
        order_id=int(order_id),
        over_error=OverPack,
        under_error=UnderPack,
        not_allowed_error=PackingNotAllowed,
        payload=payload,
    )
    strategy = apply_increment(target, delta)
    row = target.rows().get()
    logger.info(
        "packing_progress_updated",
        extra={
            "event": "packing_progress_updated",
            **payload,
            "delta": delta,
            "quantity_packed": row.quantity_packed,
            "strategy": strategy,
            "actor_id": getattr(actor, "pk", None),
        },
    )
    return row


def complete_session(*, session, actor=None) -> PickingSession:
    """Move every member order to ``ready_to_ship`` and close the session.

    Requires every live packing row to be complete (``IncompletePacking`` lists
    the shortages). Every member that can no longer reach ``ready_to_ship`` is
    listed in one ``SessionCompletionFailed``; a transition failing later still
    raises it and every write of the call is rolled back.
    """

    session_id = _pk(session)
    with atomic_with_timeout():
        locked = _lock_session(session_id)
        if locked.status != PickingSession.STATUS_PACKING:
            raise InvalidSessionState(session_id=session_id, status=locked.status)
        rows = list(
            PackingProgress.objects.select_for_update()
            .filter(session_id=session_id, sealed_at__isnull=True)
            .order_by("id")
        )
        shortages = [
            {
                "order_id": r.order_id,
                "product_id": r.product_id,
                "quantity_needed": r.quantity_needed,
                "quantity_packed": r.quantity_packed,
                "missing": r.quantity_needed - r.quantity_packed,
            }
            for r in rows
            if r.quantity_packed < r.quantity_needed
        ]
        if shortages:
            raise IncompletePacking(session_id=session_id, shortages=shortages)

        member_ids = list(
            locked.session_orders.filter(released_at__isnull=True).order_by("order_id").values_list("order_id", flat=True)
        )
        statuses = dict(
            Order.objects.select_for_update().filter(pk__in=member_ids).order_by("pk").values_list("pk", "status")
        )
        offenders = [
            {"order_id": order_id, "status": statuses[order_id]}
            for order_id in member_ids
            if not can_transition(statuses[order_id], Order.STATUS_READY_TO_SHIP)
        ]
        if offenders:
            raise SessionCompletionFailed(
                session_id=session_id,
                order_id=offenders[0]["order_id"],
                cause="invalid_transition",
                cause_detail=f"{len(offenders)} order(s) can no longer move to ready_to_ship.",
                offenders=offenders,
            )
        for order_id in member_ids:
            try:
                transition_order(
                    order=order_id,
                    target_status=Order.STATUS_READY_TO_SHIP,
                    actor=actor,
                    note=f"picking session {locked.code}",
                )
            except DomainError as exc:
                raise SessionCompletionFailed(
                    session_id=session_id, order_id=order_id, cause=exc.code, cause_detail=exc.detail
                ) from exc

        now = timezone.now()
        PackingProgress.objects.filter(session_id=session_id, sealed_at__isnull=True).update(sealed_at=now, updated_at=now)
        locked.session_orders.filter(released_at__isnull=True).update(released_at=now)
        PickingSession.objects.filter(pk=session_id).update(
            status=PickingSession.STATUS_COMPLETED,
            completed_at=now,
            completed_by=_actor_or_none(actor),
            last_activity_at=now,
            updated_at=now,
        )
        result = PickingSession.objects.get(pk=session_id)

    logger.info(
        "picking_session_completed",
        extra={
            "event": "picking_session_completed",
            "session_id": session_id,
            "session_code": result.code,
            "order_count": len(member_ids),
            "actor_id": getattr(actor, "pk", None),
        },
    )
    return result


def _release_order(session: PickingSession, order_id: int, *, actor, now) -> None:
    """End one order's membership and return it to ``confirmed``.

    The membership is released first: the state machine refuses ``confirmed``
    for an order a session still counts.
    """

    session.session_orders.filter(order_id=order_id, released_at__isnull=True).update(released_at=now)
    PackingProgress.objects.filter(session=session, order_id=order_id, sealed_at__isnull=True).update(
        sealed_at=now, updated_at=now
    )
    status = Order.objects.filter(pk=order_id).values_list("status", flat=True).get()
    if status == Order.STATUS_IN_PREPARATION:
        transition_order(
            order=order_id,
            target_status=Order.STATUS_CONFIRMED,
            actor=actor,
            note=f"released from picking session {session.code}",
        )


def _abandon_locked(session: PickingSession, *, actor, reason: str, now) -> None:
    member_ids = list(
        session.session_orders.filter(released_at__isnull=True).order_by("order_id").values_list("order_id", flat=True)
    )
    for order_id in member_ids:
        _release_order(session, order_id, actor=actor, now=now)
    session.items.filter(sealed_at__isnull=True).update(sealed_at=now, updated_at=now)
    PickingSession.objects.filter(pk=session.pk).update(
        status=PickingSession.STATUS_ABANDONED,
        abandoned_at=now,
        abandoned_by=_actor_or_none(actor),
        abandon_reason=reason[:200],
        last_activity_at=now,
        updated_at=now,
    )


def abandon_session(*, session, actor=None, reason: str = "") -> PickingSession:
    """Give up on an active session, returning its orders to ``confirmed``.

    The session row is kept for audit; its orders become free to batch again.
    """

    session_id = _pk(session)
    with atomic_with_timeout():
        locked = _lock_session(session_id)
        if not locked.is_active:
            raise InvalidSessionState(session_id=session_id, status=locked.status)
        _abandon_locked(locked, actor=actor, reason=reason, now=timezone.now())
        result = PickingSession.objects.get(pk=session_id)
    logger.info(
        "picking_session_abandoned",
        extra={
            "event": "picking_session_abandoned",
            "session_id": session_id,
            "reason": reason,
            "actor_id": getattr(actor, "pk", None),
        },
    )
    return result


def remove_order_from_session(*, session, order_id: int, actor=None) -> dict:
    """Take one order out of an active session.

    Aggregated demand shrinks by that order's quantities (picked units above
    the new need go back to the shelf). An emptied session is abandoned.
    """

    session_id = _pk(session)
    order_id = int(order_id)
    with atomic_with_timeout():
        locked = _lock_session(session_id)
        if not locked.is_active:
            raise InvalidSessionState(session_id=session_id, status=locked.status)
        if not locked.session_orders.filter(order_id=order_id, released_at__isnull=True).exists():
            raise PickingSessionOrder.DoesNotExist("Order is not in this session.")
        now = timezone.now()
        _release_order(locked, order_id, actor=actor, now=now)

        for line in OrderLineItem.objects.filter(order_id=order_id).values("product_id", "quantity"):
            item = locked.items.select_for_update().filter(product_id=line["product_id"]).first()
            if item is None:
                continue
            needed = max(0, item.total_quantity_needed - line["quantity"])
            PickingSessionItem.objects.filter(pk=item.pk).update(
                total_quantity_needed=needed,
                quantity_picked=min(item.quantity_picked, needed),
                version=F("version") + 1,
                updated_at=now,
            )

        remaining = locked.session_orders.filter(released_at__isnull=True).count()
        if remaining == 0:
            _abandon_locked(locked, actor=actor, reason="No orders remaining", now=now)
        else:
            PickingSession.objects.filter(pk=session_id).update(last_activity_at=now, updated_at=now)

    logger.info(
        "order_removed_from_session",
        extra={
            "event": "order_removed_from_session",
            "session_id": session_id,
            "order_id": order_id,
            "remaining_orders": remaining,
            "actor_id": getattr(actor, "pk", None),
        },
    )
    return {"order_id": order_id, "remaining_orders": remaining, "session_abandoned": remaining == 0}


def flag_stale_sessions(*, store_id: int | None = None, now=None) -> list[int]:
    """Mark active sessions idle longer than the staleness window. Nothing is cancelled."""

    now = now or timezone.now()
    cutoff = now - timedelta(minutes=int(settings.PICKING_SESSION_STALE_AFTER_MINUTES))
    qs = PickingSession.objects.filter(
        status__in=PickingSession.ACTIVE_STATUSES,
        last_activity_at__lt=cutoff,
        stale_flagged_at__isnull=True,
    )
    if store_id is not None:
        qs = qs.filter(store_id=store_id)
    ids = list(qs.values_list("id", flat=True))
    if ids:
        PickingSession.objects.filter(pk__in=ids, stale_flagged_at__isnull=True).update(stale_flagged_at=now)
    for session_id in ids:
        logger.warning("picking_session_stale", extra={"event": "picking_session_stale", "session_id": session_id})
    return ids
