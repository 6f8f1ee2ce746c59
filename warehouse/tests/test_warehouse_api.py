import pytest
from catalog.models import Product
from orders.models import Order
from orders.services import transition_order
from orders.tests.factories import stocked_product
from rest_framework.test import APIClient
from stores.tests.factories import StoreFactory, UserFactory
from warehouse.tests.factories import confirmed_order


def _client(store):
    client = APIClient()
    client.force_authenticate(user=UserFactory())
    client.credentials(HTTP_X_STORE_ID=str(store.id))
    return client


@pytest.mark.django_db
def test_session_lifecycle_over_http():
    store = StoreFactory()
    p = stocked_product(store, sku="P", stock=10)
    o1 = confirmed_order(store, [(p, 2)])
    o2 = confirmed_order(store, [(p, 1)])
    client = _client(store)

    available = client.get("/api/v1/warehouse/confirmed-orders/").json()
    assert sorted(o["id"] for o in available["results"]) == [o1.id, o2.id]

    r = client.post("/api/v1/warehouse/sessions/", {"order_ids": [o1.id, o2.id]}, format="json")
    assert r.status_code == 201
    session = r.json()
    assert session["status"] == "picking"
    assert session["order_ids"] == [o1.id, o2.id]
    base = f"/api/v1/warehouse/sessions/{session['id']}"

    assert client.get("/api/v1/warehouse/confirmed-orders/").json()["count"] == 0
    assert [s["id"] for s in client.get("/api/v1/warehouse/sessions/").json()] == [session["id"]]

    picking = client.get(f"{base}/picking-list/").json()
    assert picking == [
        {
            "product_id": p.id,
            "product_name": p.name,
            "sku": "P",
            "stock": 10,
            "total_quantity_needed": 3,
            "quantity_picked": 0,
            "is_complete": False,
        }
    ]

    r = client.post(f"{base}/pick/", {"product_id": p.id, "quantity": 3}, format="json")
    assert r.status_code == 200
    assert r.json()["quantity_picked"] == 3

    r = client.post(f"{base}/finish-picking/")
    assert r.status_code == 200
    assert r.json()["status"] == "packing"

    for order_id, qty in ((o1.id, 2), (o2.id, 1)):
        for _ in range(qty):
            r = client.post(f"{base}/pack/", {"order_id": order_id, "product_id": p.id}, format="json")
            assert r.status_code == 200

    r = client.post(f"{base}/pack/", {"order_id": o2.id, "product_id": p.id}, format="json")
    assert r.status_code == 400
    assert r.json()["code"] == "over_pack"

    packing = client.get(f"{base}/packing-list/").json()
    assert all(o["is_complete"] for o in packing["orders"])
    assert packing["basket"] == [
        {"product_id": p.id, "product_name": p.name, "quantity_picked": 3, "quantity_packed": 3, "remaining": 0}
    ]

    r = client.post(f"{base}/complete/")
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert Product.objects.get(pk=p.pk).stock == 7

    ready = client.get("/api/v1/orders/ready-to-ship/").json()
    assert sorted(o["id"] for o in ready["results"]) == [o1.id, o2.id]


@pytest.mark.django_db
def test_create_session_reports_offenders():
    store = StoreFactory()
    p = stocked_product(store, sku="P")
    ok = confirmed_order(store, [(p, 1)])
    client = _client(store)
    client.post("/api/v1/warehouse/sessions/", {"order_ids": [ok.id]}, format="json")
    fresh = confirmed_order(store, [(p, 1)])

    r = client.post("/api/v1/warehouse/sessions/", {"order_ids": [fresh.id, ok.id]}, format="json")

    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "order_not_eligible"
    assert [o["order_id"] for o in body["offenders"]] == [ok.id]


@pytest.mark.django_db
def test_completion_conflict_is_409():
    store = StoreFactory()
    p = stocked_product(store, sku="P")
    o1 = confirmed_order(store, [(p, 1)])
    o2 = confirmed_order(store, [(p, 1)])
    client = _client(store)
    session_id = client.post("/api/v1/warehouse/sessions/", {"order_ids": [o1.id, o2.id]}, format="json").json()["id"]
    base = f"/api/v1/warehouse/sessions/{session_id}"
    client.post(f"{base}/pick/", {"product_id": p.id, "quantity": 2}, format="json")
    client.post(f"{base}/finish-picking/")
    for order in (o1, o2):
        client.post(f"{base}/pack/", {"order_id": order.id, "product_id": p.id}, format="json")
    transition_order(order=o2, target_status=Order.STATUS_CANCELLED)

    r = client.post(f"{base}/complete/")

    assert r.status_code == 409
    assert r.json()["code"] == "session_completion_failed"
    assert r.json()["order_id"] == o2.id
    assert r.json()["offenders"] == [{"order_id": o2.id, "status": "cancelled"}]


@pytest.mark.django_db
def test_abandon_and_remove_order_endpoints():
    store = StoreFactory()
    p = stocked_product(store, sku="P")
    o1 = confirmed_order(store, [(p, 1)])
    o2 = confirmed_order(store, [(p, 1)])
    client = _client(store)
    session_id = client.post("/api/v1/warehouse/sessions/", {"order_ids": [o1.id, o2.id]}, format="json").json()["id"]
    base = f"/api/v1/warehouse/sessions/{session_id}"

    r = client.delete(f"{base}/orders/{o2.id}/")
    assert r.status_code == 200
    assert r.json() == {"order_id": o2.id, "remaining_orders": 1, "session_abandoned": False}
    assert client.delete(f"{base}/orders/{o2.id}/").status_code == 404

    r = client.post(f"{base}/abandon/", {"reason": "shift over"}, format="json")
    assert r.status_code == 200
    assert r.json()["status"] == "abandoned"
    assert r.json()["abandon_reason"] == "shift over"

    r = client.post(f"{base}/abandon/")
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_session_state"


@pytest.mark.django_db
def test_sessions_are_store_scoped():
    store = StoreFactory()
    p = stocked_product(store, sku="P")
    order = confirmed_order(store, [(p, 1)])
    session_id = (
        _client(store).post("/api/v1/warehouse/sessions/", {"order_ids": [order.id]}, format="json").json()["id"]
    )

    other = _client(StoreFactory())
    assert other.get(f"/api/v1/warehouse/sessions/{session_id}/").status_code == 404
    assert other.post(f"/api/v1/warehouse/sessions/{session_id}/abandon/").status_code == 404


@pytest.mark.django_db
def test_pack_rejects_zero_quantity():
    store = StoreFactory()
    p = stocked_product(store, sku="P")
    order = confirmed_order(store, [(p, 1)])
    client = _client(store)
    session_id = client.post("/api/v1/warehouse/sessions/", {"order_ids": [order.id]}, format="json").json()["id"]

    r = client.post(
        f"/api/v1/warehouse/sessions/{session_id}/pack/",
        {"order_id": order.id, "product_id": p.id, "quantity": 0},
        format="json",
    )

    assert r.status_code == 400
    assert "quantity" in r.json()
