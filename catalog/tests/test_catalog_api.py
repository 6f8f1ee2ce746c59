import pytest
from catalog.models import Product
from catalog.services import create_product
from catalog.tests.factories import ProductFactory
from django.core.management import call_command
from django.db import IntegrityError
from inventory.models import InventoryMovement
from orders.models import Order
from rest_framework.test import APIClient
from stores.tests.factories import StoreFactory, UserFactory


def _client(store):
    client = APIClient()
    client.force_authenticate(user=UserFactory())
    client.credentials(HTTP_X_STORE_ID=str(store.id))
    return client


@pytest.mark.django_db
def test_create_product_books_opening_stock_in_ledger():
    store = StoreFactory()
    product = create_product(store=store, name="Collagen 300g", sku=" COL-300 ", opening_stock=42)

    assert product.sku == "COL-300"
    assert product.stock == 42
    movement = InventoryMovement.objects.get(product=product)
    assert (movement.kind, movement.quantity, movement.stock_after) == ("receipt", 42, 42)


@pytest.mark.django_db
def test_create_product_without_stock_writes_no_ledger_row():
    product = create_product(store=StoreFactory(), name="Empty", sku="E-1")
    assert product.stock == 0
    assert not InventoryMovement.objects.filter(product=product).exists()


@pytest.mark.django_db
def test_sku_unique_per_store_only():
    store = StoreFactory()
    ProductFactory(store=store, sku="DUP")
    ProductFactory(store=StoreFactory(), sku="DUP")
    with pytest.raises(IntegrityError):
        ProductFactory(store=store, sku="DUP")


@pytest.mark.django_db
def test_product_list_is_store_scoped():
    store = StoreFactory()
    mine = create_product(store=store, name="Mine", sku="M-1", opening_stock=2)
    create_product(store=StoreFactory(), name="Theirs", sku="T-1", opening_stock=2)

    r = _client(store).get("/api/v1/catalog/products/")
    assert r.status_code == 200
    assert [p["id"] for p in r.json()["results"]] == [mine.id]


@pytest.mark.django_db
def test_product_detail_of_other_store_is_404():
    store = StoreFactory()
    foreign = ProductFactory(store=StoreFactory())
    assert _client(store).get(f"/api/v1/catalog/products/{foreign.id}/").status_code == 404


@pytest.mark.django_db
def test_filters_by_sku_and_negative_stock():
    store = StoreFactory()
    a = create_product(store=store, name="Alpha", sku="ALPHA", opening_stock=1)
    b = create_product(store=store, name="Beta", sku="BETA", opening_stock=1)
    Product.objects.filter(pk=b.pk).update(stock=-4)
    client = _client(store)

    r = client.get("/api/v1/catalog/products/?sku=alpha")
    assert [p["id"] for p in r.json()["results"]] == [a.id]

    r = client.get("/api/v1/catalog/products/?negative_stock=true")
    assert [(p["id"], p["stock"]) for p in r.json()["results"]] == [(b.id, -4)]


@pytest.mark.django_db
def test_products_require_authentication():
    store = StoreFactory()
    client = APIClient()
    client.credentials(HTTP_X_STORE_ID=str(store.id))
    assert client.get("/api/v1/catalog/products/").status_code == 401


@pytest.mark.django_db
def test_seed_catalog_is_idempotent():
    call_command("seed_catalog", "--store-code", "demo-test")
    call_command("seed_catalog", "--store-code", "demo-test")

    products = Product.objects.filter(store__code="demo-test")
    assert products.count() == 3
    assert products.get(sku="COL-300").stock == 120
    orders = Order.objects.filter(store__code="demo-test")
    assert orders.count() == 3
    assert set(orders.values_list("status", flat=True)) == {"confirmed"}
