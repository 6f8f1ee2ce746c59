"""Catalog services."""

from django.db import transaction
from inventory.services import receive_stock

from .models import Product


@transaction.atomic
def create_product(*, store, name: str, sku: str, opening_stock: int = 0, actor=None) -> Product:
    """Create a product, booking any opening stock through the ledger.

    The product row starts at zero so that its cached ``stock`` and the ledger
    sum agree from the first unit.
    """

    product = Product.objects.create(store=store, name=name, sku=sku.strip(), stock=0)
    if opening_stock:
        receive_stock(product_id=product.id, quantity=opening_stock, reference="opening balance", actor=actor)
        product.refresh_from_db(fields=["stock"])
    return product
