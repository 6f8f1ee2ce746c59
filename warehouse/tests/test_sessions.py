import datetime
import threading
from datetime import timedelta

import pytest
from django.core.management import call_command
from django.db import close_old_connections, connection
from django.utils import timezone
from orders.models import Order, OrderStatusChange
from orders.services import transition_order
from orders.tests.factories import order_with_items, stocked_product
from stores.tests.factories import StoreFactory, UserFactory
from warehouse.codes import allocate_session_code, format_session_code
from warehouse.exceptions import IncompletePicking, InvalidSessionState, OrderNotEligible, OverPick, UnderPick
from warehouse.models import PackingProgress, PickingSession, PickingSessionItem, PickingSessionOrder
from warehouse.services import (
    abandon_session,
    create_session,
    finish_picking,
    flag_stale_sessions,
    record_pick,
    remove_order_from_session,
)
from warehouse.tests.factories import confirmed_order, packing_session


def test_code_format():
    assert format_session_code(datetime.date(2026, 1, 8), 3, prefix="PREP") == "PREP-08012026-03"
    assert format_session_code(datetime.date(2026, 1, 8), 112, prefix="PREP") == "PREP-08012026-112"


@pytest.mark.django_db
def test_codes_are_sequential_per_store_and_day():
    store, other = StoreFactory(), StoreFactory()
    day = datetime.date(2026, 3, 1)

    assert allocate_session_code(store_id=store.id, day=day) == "PREP-01032026-01"
    assert allocate_session_code(store_id=store.id, day=day) == "PREP-01032026-02"
    assert allocate_session_code(store_id=other.id, day=day) == "PREP-01032026-01"
    assert allocate_session_code(store_id=store.id, day=day + timedelta(days=1)) == "PREP-02032026-01"


@pytest.mark.django_db
def test_code_prefix_comes_from_settings(settings):
    settings.PICKING_SESSION_CODE_PREFIX = "BATCH"
    assert allocate_session_code(store_id=StoreFactory().id, day=datetime.date(2026, 3, 1)) == "BATCH-01032026-01"


@pytest.mark.django_db
def test_create_session_aggregates_and_moves_orders():
    store = StoreFactory()
    user = UserFactory()
    a = stocked_product(store, sku="A")
    b = stocked_product(store, sku="B")
    o1 = confirmed_order(store, [(a, 2), (b, 1)])
    o2 = confirmed_order(store, [(a, 3)])

    session = create_session(store=store, order_ids=[o1.id, o2.id], actor=user)

    assert session.status == PickingSession.STATUS_PICKING
    assert session.code.startswith(f"PREP-{timezone.localdate():%d%m%Y}-")
    assert session.created_by == user
    totals = dict(PickingSessionItem.objects.filter(session=session).values_list("product_id", "total_quantity_needed"))
    assert totals == {a.id: 5, b.id: 1}
    needed = {
        (r.order_id, r.product_id): r.quantity_needed for r in PackingProgress.objects.filter(session=session)
    }
    assert needed == {(o1.id, a.id): 2, (o1.id, b.id): 1, (o2.id, a.id): 3}
    for order in (o1, o2):
        order.refresh_from_db()
        assert order.status == Order.STATUS_IN_PREPARATION
        assert order.in_preparation_at is not None
    assert OrderStatusChange.objects.filter(to_status="in_preparation").count() == 2


@pytest.mark.django_db
def test_order_in_active_session_blocks_whole_batch():
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    busy = confirmed_order(store, [(a, 1)])
    free = confirmed_order(store, [(a, 1)])
    first = create_session(store=store, order_ids=[busy.id])

    with pytest.raises(OrderNotEligible) as exc:
        create_session(store=store, order_ids=[free.id, busy.id])

    assert exc.value.payload["offenders"] == [
        {"order_id": busy.id, "reason": "in_active_session", "session_code": first.code}
    ]
    free.refresh_from_db()
    assert free.status == Order.STATUS_CONFIRMED
    assert PickingSession.objects.count() == 1
    assert not PickingSessionOrder.objects.filter(order=free).exists()


@pytest.mark.django_db
def test_every_offender_is_reported():
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    pending = order_with_items(store, [(a, 1)])
    foreign = confirmed_order(StoreFactory(), [])
    empty = confirmed_order(store, [])
    good = confirmed_order(store, [(a, 1)])

    with pytest.raises(OrderNotEligible) as exc:
        create_session(store=store, order_ids=[good.id, pending.id, foreign.id, empty.id])

    reasons = {o["order_id"]: o["reason"] for o in exc.value.payload["offenders"]}
    assert reasons == {pending.id: "not_confirmed", foreign.id: "not_found", empty.id: "no_line_items"}
    good.refresh_from_db()
    assert good.status == Order.STATUS_CONFIRMED


@pytest.mark.django_db
def test_empty_selection_rejected():
    with pytest.raises(OrderNotEligible):
        create_session(store=StoreFactory(), order_ids=[])


@pytest.mark.django_db
def test_record_pick_is_bounded():
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    session = create_session(store=store, order_ids=[confirmed_order(store, [(a, 2)]).id])

    record_pick(session=session, product_id=a.id)
    item = record_pick(session=session, product_id=a.id)
    assert item.quantity_picked == 2

    with pytest.raises(OverPick):
        record_pick(session=session, product_id=a.id)
    assert record_pick(session=session, product_id=a.id, delta=-2).quantity_picked == 0
    with pytest.raises(UnderPick):
        record_pick(session=session, product_id=a.id, delta=-1)


@pytest.mark.django_db
def test_finish_picking_requires_full_pick():
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    session = create_session(store=store, order_ids=[confirmed_order(store, [(a, 2)]).id])
    record_pick(session=session, product_id=a.id)

    with pytest.raises(IncompletePicking) as exc:
        finish_picking(session=session)
    assert exc.value.payload["shortages"][0]["missing"] == 1

    record_pick(session=session, product_id=a.id)
    session = finish_picking(session=session)

    assert session.status == PickingSession.STATUS_PACKING
    assert session.picking_completed_at is not None
    assert session.packing_started_at is not None
    with pytest.raises(InvalidSessionState):
        record_pick(session=session, product_id=a.id, delta=-1)
    with pytest.raises(InvalidSessionState):
        finish_picking(session=session)


@pytest.mark.django_db
def test_abandon_releases_orders_for_rebatching():
    store = StoreFactory()
    user = UserFactory()
    a = stocked_product(store, sku="A")
    order = confirmed_order(store, [(a, 1)])
    session = packing_session(store, [order])

    abandoned = abandon_session(session=session, actor=user, reason="operator left")

    assert abandoned.status == PickingSession.STATUS_ABANDONED
    assert abandoned.abandoned_by == user
    assert abandoned.abandon_reason == "operator left"
    order.refresh_from_db()
    assert order.status == Order.STATUS_CONFIRMED
    assert not PackingProgress.objects.filter(session=session, sealed_at__isnull=True).exists()
    assert create_session(store=store, order_ids=[order.id]).status == PickingSession.STATUS_PICKING
    with pytest.raises(InvalidSessionState):
        abandon_session(session=session)


@pytest.mark.django_db
def test_abandon_leaves_cancelled_members_alone():
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    o1 = confirmed_order(store, [(a, 1)])
    o2 = confirmed_order(store, [(a, 1)])
    session = create_session(store=store, order_ids=[o1.id, o2.id])
    transition_order(order=o2, target_status=Order.STATUS_CANCELLED)

    abandon_session(session=session)

    o1.refresh_from_db()
    o2.refresh_from_db()
    assert o1.status == Order.STATUS_CONFIRMED
    assert o2.status == Order.STATUS_CANCELLED


@pytest.mark.django_db
def test_remove_order_shrinks_demand():
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    o1 = confirmed_order(store, [(a, 2)])
    o2 = confirmed_order(store, [(a, 3)])
    session = create_session(store=store, order_ids=[o1.id, o2.id])
    record_pick(session=session, product_id=a.id, delta=5)

    result = remove_order_from_session(session=session, order_id=o2.id)

    assert result == {"order_id": o2.id, "remaining_orders": 1, "session_abandoned": False}
    item = PickingSessionItem.objects.get(session=session, product=a)
    assert (item.total_quantity_needed, item.quantity_picked) == (2, 2)
    o2.refresh_from_db()
    assert o2.status == Order.STATUS_CONFIRMED
    assert PackingProgress.objects.get(session=session, order=o2).sealed_at is not None


@pytest.mark.django_db
def test_removing_last_order_abandons_session():
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    order = confirmed_order(store, [(a, 1)])
    session = create_session(store=store, order_ids=[order.id])

    result = remove_order_from_session(session=session, order_id=order.id)

    assert result["session_abandoned"] is True
    session.refresh_from_db()
    assert session.status == PickingSession.STATUS_ABANDONED
    assert session.abandon_reason == "No orders remaining"


@pytest.mark.django_db
def test_remove_unknown_order_is_not_found():
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    session = create_session(store=store, order_ids=[confirmed_order(store, [(a, 1)]).id])
    with pytest.raises(PickingSessionOrder.DoesNotExist):
        remove_order_from_session(session=session, order_id=999999)


@pytest.mark.django_db
def test_stale_sessions_flagged_not_cancelled(settings):
    settings.PICKING_SESSION_STALE_AFTER_MINUTES = 60
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    idle = create_session(store=store, order_ids=[confirmed_order(store, [(a, 1)]).id])
    busy = create_session(store=store, order_ids=[confirmed_order(store, [(a, 1)]).id])
    PickingSession.objects.filter(pk=idle.pk).update(last_activity_at=timezone.now() - timedelta(hours=2))

    assert flag_stale_sessions(store_id=store.id) == [idle.id]
    assert flag_stale_sessions(store_id=store.id) == []

    idle.refresh_from_db()
    assert idle.status == PickingSession.STATUS_PICKING
    assert idle.stale_flagged_at is not None
    busy.refresh_from_db()
    assert busy.stale_flagged_at is None

    # Activity clears the flag.
    record_pick(session=idle, product_id=a.id)
    idle.refresh_from_db()
    assert idle.stale_flagged_at is None


@pytest.mark.django_db
def test_flag_stale_sessions_command(settings):
    settings.PICKING_SESSION_STALE_AFTER_MINUTES = 1
    store = StoreFactory()
    a = stocked_product(store, sku="A")
    session = create_session(store=store, order_ids=[confirmed_order(store, [(a, 1)]).id])
    PickingSession.objects.filter(pk=session.pk).update(last_activity_at=timezone.now() - timedelta(minutes=5))

    call_command("flag_stale_sessions")

    session.refresh_from_db()
    assert session.stale_flagged_at is not None


@pytest.mark.django_db(transaction=True)
def test_concurrent_creation_gets_distinct_codes_and_exclusive_orders():
    if connection.vendor == "sqlite":
        pytest.skip("Row-level concurrency needs a server database")

    store = StoreFactory()
    a = stocked_product(store, sku="A")
    shared = confirmed_order(store, [(a, 1)])
    own = [confirmed_order(store, [(a, 1)]) for _ in range(4)]
    barrier = threading.Barrier(4)
    results, errors = [], []

    def worker(order):
        close_old_connections()
        try:
            barrier.wait()
            results.append(create_session(store=store, order_ids=[order.id, shared.id]).code)
        except OrderNotEligible:
            errors.append(order.id)
        finally:
            close_old_connections()

    threads = [threading.Thread(target=worker, args=(o,)) for o in own]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1
    assert len(errors) == 3
    assert PickingSessionOrder.objects.filter(order=shared, released_at__isnull=True).count() == 1

    codes = set()
    lock = threading.Lock()

    def allocate():
        close_old_connections()
        try:
            code = allocate_session_code(store_id=store.id)
            with lock:
                codes.add(code)
        finally:
            close_old_connections()

    threads = [threading.Thread(target=allocate) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(codes) == 8
