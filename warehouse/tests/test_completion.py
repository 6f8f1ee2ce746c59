import pytest
from catalog.models import Product
from inventory.models import InventoryMovement
from orders.exceptions import ConcurrentModification, InvalidTransition, OrderLocked
from orders.models import Order, OrderLineItem
from orders.services import replace_line_items, transition_order
from orders.tests.factories import order_with_items, stocked_product
from stores.tests.factories import StoreFactory, UserFactory
from warehouse import services
from warehouse.exceptions import IncompletePacking, InvalidSessionState, SessionCompletionFailed
from warehouse.models import PackingProgress, PickingSession, PickingSessionOrder
from warehouse.services import (
    complete_session,
    create_session,
    finish_picking,
    increment_packed,
    record_pick,
    remove_order_from_session,
)
from warehouse.tests.factories import confirmed_order, pack_everything, packing_session


def _statuses(orders) -> list[str]:
    return list(Order.objects.filter(pk__in=[o.id for o in orders]).order_by("id").values_list("status", flat=True))


@pytest.mark.django_db
def test_full_flow_deducts_stock_once_per_line():
    store = StoreFactory()
    user = UserFactory()
    p = stocked_product(store, sku="P", stock=10)
    q = stocked_product(store, sku="Q", stock=4)
    o1 = order_with_items(store, [(p, 3)])
    o2 = order_with_items(store, [(p, 2), (q, 1)])
    for order in (o1, o2):
        transition_order(order=order, target_status=Order.STATUS_CONFIRMED, actor=user)

    session = create_session(store=store, order_ids=[o1.id, o2.id], actor=user)
    record_pick(session=session, product_id=p.id, delta=5)
    record_pick(session=session, product_id=q.id)
    finish_picking(session=session, actor=user)
    pack_everything(session)
    completed = complete_session(session=session, actor=user)

    assert completed.status == PickingSession.STATUS_COMPLETED
    assert completed.completed_by == user
    assert completed.completed_at is not None
    assert _statuses([o1, o2]) == ["ready_to_ship", "ready_to_ship"]
    assert Product.objects.get(pk=p.pk).stock == 5
    assert Product.objects.get(pk=q.pk).stock == 3
    deductions = InventoryMovement.objects.filter(kind=InventoryMovement.KIND_ENTERED_READY_TO_SHIP)
    assert sorted(deductions.values_list("quantity", flat=True)) == [-3, -2, -1]
    assert not PackingProgress.objects.filter(session=session, sealed_at__isnull=True).exists()
    assert not PickingSessionOrder.objects.filter(session=session, released_at__isnull=True).exists()


@pytest.mark.django_db
def test_single_order_through_session_then_cancel():
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=10)
    o1 = confirmed_order(store, [(p, 3)])
    session = packing_session(store, [o1])
    pack_everything(session)
    complete_session(session=session)

    assert Product.objects.get(pk=p.pk).stock == 7
    assert list(InventoryMovement.objects.filter(order=o1).values_list("quantity", flat=True)) == [-3]

    transition_order(order=o1, target_status=Order.STATUS_CANCELLED)

    assert Product.objects.get(pk=p.pk).stock == 10
    assert sorted(InventoryMovement.objects.filter(order=o1).values_list("quantity", flat=True)) == [-3, 3]
    assert o1.items.get().stock_restored is True


@pytest.mark.django_db
def test_incomplete_packing_lists_every_shortage():
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=10)
    q = stocked_product(store, sku="Q", stock=10)
    o1 = confirmed_order(store, [(p, 2)])
    o2 = confirmed_order(store, [(p, 1), (q, 2)])
    session = packing_session(store, [o1, o2])
    increment_packed(session=session, order_id=o1.id, product_id=p.id, by_amount=2)
    increment_packed(session=session, order_id=o2.id, product_id=q.id)

    with pytest.raises(IncompletePacking) as exc:
        complete_session(session=session)

    shortages = {(s["order_id"], s["product_id"]): s["missing"] for s in exc.value.payload["shortages"]}
    assert shortages == {(o2.id, p.id): 1, (o2.id, q.id): 1}
    session.refresh_from_db()
    assert session.status == PickingSession.STATUS_PACKING
    assert _statuses([o1, o2]) == ["in_preparation", "in_preparation"]
    assert Product.objects.get(pk=p.pk).stock == 10


@pytest.mark.django_db
def test_cancelled_member_fails_whole_completion():
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=20)
    orders = [confirmed_order(store, [(p, 1)]) for _ in range(5)]
    session = packing_session(store, orders)
    pack_everything(session)
    victim = orders[2]
    transition_order(order=victim, target_status=Order.STATUS_CANCELLED)

    with pytest.raises(SessionCompletionFailed) as exc:
        complete_session(session=session)

    assert exc.value.status_code == 409
    assert exc.value.payload["order_id"] == victim.id
    assert exc.value.payload["cause"] == "invalid_transition"
    assert Order.objects.filter(status=Order.STATUS_READY_TO_SHIP).count() == 0
    session.refresh_from_db()
    assert session.status == PickingSession.STATUS_PACKING
    assert Product.objects.get(pk=p.pk).stock == 20
    assert not InventoryMovement.objects.filter(kind=InventoryMovement.KIND_ENTERED_READY_TO_SHIP).exists()
    assert not PackingProgress.objects.filter(session=session, sealed_at__isnull=False).exists()


@pytest.mark.django_db
def test_conflict_midway_rolls_back_earlier_transitions(monkeypatch):
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=20)
    orders = [confirmed_order(store, [(p, 2)]) for _ in range(5)]
    session = packing_session(store, orders)
    pack_everything(session)

    real_transition = services.transition_order
    calls = []

    def flaky_transition(**kwargs):
        calls.append(kwargs["order"])
        if len(calls) == 4:
            raise ConcurrentModification(order_id=kwargs["order"])
        return real_transition(**kwargs)

    monkeypatch.setattr(services, "transition_order", flaky_transition)

    with pytest.raises(SessionCompletionFailed) as exc:
        complete_session(session=session)

    assert exc.value.payload["cause"] == "concurrent_modification"
    assert _statuses(orders) == ["in_preparation"] * 5
    assert Product.objects.get(pk=p.pk).stock == 20


@pytest.mark.django_db
def test_complete_requires_packing_status():
    store = StoreFactory()
    p = stocked_product(store, sku="P")
    session = create_session(store=store, order_ids=[confirmed_order(store, [(p, 1)]).id])

    with pytest.raises(InvalidSessionState):
        complete_session(session=session)


@pytest.mark.django_db
def test_complete_twice_rejected():
    store = StoreFactory()
    p = stocked_product(store, sku="P")
    order = confirmed_order(store, [(p, 1)])
    session = packing_session(store, [order])
    pack_everything(session)
    complete_session(session=session)

    with pytest.raises(InvalidSessionState):
        complete_session(session=session)
    assert Product.objects.get(pk=p.pk).stock == 99


@pytest.mark.django_db
def test_removed_order_does_not_block_completion():
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=10)
    keep = confirmed_order(store, [(p, 1)])
    drop = confirmed_order(store, [(p, 1)])
    session = packing_session(store, [keep, drop])
    increment_packed(session=session, order_id=keep.id, product_id=p.id)
    remove_order_from_session(session=session, order_id=drop.id)

    complete_session(session=session)

    assert _statuses([keep, drop]) == ["ready_to_ship", "confirmed"]
    assert Product.objects.get(pk=p.pk).stock == 9


@pytest.mark.django_db
def test_member_cancelled_while_completing_advances_nobody(monkeypatch):
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=20)
    orders = [confirmed_order(store, [(p, 1)]) for _ in range(5)]
    session = packing_session(store, orders)
    pack_everything(session)
    victim = orders[3]

    real_transition = services.transition_order
    cancelled = []

    def transition_racing_cancel(**kwargs):
        if not cancelled:
            cancelled.append(real_transition(order=victim.id, target_status=Order.STATUS_CANCELLED))
        return real_transition(**kwargs)

    monkeypatch.setattr(services, "transition_order", transition_racing_cancel)

    with pytest.raises(SessionCompletionFailed) as exc:
        complete_session(session=session)

    assert cancelled
    assert exc.value.payload["order_id"] == victim.id
    assert exc.value.payload["cause"] == "invalid_transition"
    assert Order.objects.filter(status=Order.STATUS_READY_TO_SHIP).count() == 0
    assert _statuses(orders) == ["in_preparation"] * 5
    session.refresh_from_db()
    assert session.status == PickingSession.STATUS_PACKING
    assert Product.objects.get(pk=p.pk).stock == 20
    assert not InventoryMovement.objects.filter(kind=InventoryMovement.KIND_ENTERED_READY_TO_SHIP).exists()


@pytest.mark.django_db
def test_every_unshippable_member_is_reported_at_once():
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=20)
    orders = [confirmed_order(store, [(p, 1)]) for _ in range(4)]
    session = packing_session(store, orders)
    pack_everything(session)
    for order in (orders[1], orders[3]):
        transition_order(order=order, target_status=Order.STATUS_CANCELLED)

    with pytest.raises(SessionCompletionFailed) as exc:
        complete_session(session=session)

    assert exc.value.payload["offenders"] == [
        {"order_id": orders[1].id, "status": "cancelled"},
        {"order_id": orders[3].id, "status": "cancelled"},
    ]
    assert exc.value.payload["order_id"] == orders[1].id
    assert _statuses([orders[0], orders[2]]) == ["in_preparation", "in_preparation"]


@pytest.mark.django_db
def test_session_member_cannot_be_reconfirmed_or_edited():
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=10)
    q = stocked_product(store, sku="Q", stock=10)
    order = confirmed_order(store, [(p, 2)])
    session = packing_session(store, [order])
    pack_everything(session)

    with pytest.raises(InvalidTransition) as exc:
        transition_order(order=order, target_status=Order.STATUS_CONFIRMED)
    assert exc.value.payload["reason"] == "in_active_session"

    # Even if the status is forced back, the open membership keeps the items frozen.
    Order.objects.filter(pk=order.pk).update(status=Order.STATUS_CONFIRMED)
    with pytest.raises(OrderLocked):
        replace_line_items(order=order, items=[{"product_id": q.id, "quantity": 5}])
    Order.objects.filter(pk=order.pk).update(status=Order.STATUS_IN_PREPARATION)

    complete_session(session=session)

    assert list(OrderLineItem.objects.filter(order=order).values_list("product_id", "quantity")) == [(p.id, 2)]
    assert Product.objects.get(pk=p.pk).stock == 8
    assert Product.objects.get(pk=q.pk).stock == 10


@pytest.mark.django_db
def test_released_order_can_be_reconfirmed_and_edited():
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=10)
    q = stocked_product(store, sku="Q", stock=10)
    keep = confirmed_order(store, [(p, 1)])
    drop = confirmed_order(store, [(p, 2)])
    session = packing_session(store, [keep, drop])

    remove_order_from_session(session=session, order_id=drop.id)
    edited = replace_line_items(order=drop, items=[{"product_id": q.id, "quantity": 5}])

    assert edited.status == Order.STATUS_CONFIRMED
    assert list(OrderLineItem.objects.filter(order=drop).values_list("product_id", "quantity")) == [(q.id, 5)]
