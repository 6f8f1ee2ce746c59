"""Seed a demo store for development sanity-checks.

Creates a store, a handful of products with ledgered opening stock, and a few
confirmed orders ready to be batched into a picking session.
Re-running is idempotent; existing rows are reused by store code and sku.
"""

from catalog.models import Product
from catalog.services import create_product
from django.core.management.base import BaseCommand
from django.db import transaction
from orders.models import Order
from orders.services import create_order, transition_order
from stores.models import Store

PRODUCTS = [
    ("COL-300", "Collagen 300g", 120),
    ("MAG-60", "Magnesium 60 caps", 80),
    ("OMG-90", "Omega 3 90 caps", 60),
]

ORDERS = [
    ("DEMO-1", [("COL-300", 2), ("MAG-60", 1)]),
    ("DEMO-2", [("COL-300", 1), ("OMG-90", 3)]),
    ("DEMO-3", [("MAG-60", 2)]),
]


class Command(BaseCommand):
    help = "Seed a demo store (products with opening stock and confirmed orders)"

    def add_arguments(self, parser):
        parser.add_argument("--store-code", default="demo", help="Code of the store to create or reuse")

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write("Seeding demo store...")
        store, _ = Store.objects.get_or_create(code=options["store_code"], defaults={"name": "Demo store"})

        products = {}
        for sku, name, stock in PRODUCTS:
            product = Product.objects.filter(store=store, sku=sku).first()
            if product is None:
                product = create_product(store=store, name=name, sku=sku, opening_stock=stock)
            products[sku] = product

        created = 0
        for external_id, lines in ORDERS:
            if Order.objects.filter(store=store, external_id=external_id).exists():
                continue
            order = create_order(
                store=store,
                external_id=external_id,
                customer_name="Demo customer",
                items=[{"product_id": products[sku].id, "quantity": qty} for sku, qty in lines],
            )
            transition_order(order=order, target_status=Order.STATUS_CONFIRMED, note="seed")
            created += 1

        self.stdout.write(self.style.SUCCESS(f"Demo store {store.code} (id={store.id}) ready; {created} orders added."))
