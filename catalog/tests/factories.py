import factory
from catalog.models import Product
from factory.django import DjangoModelFactory
from stores.tests.factories import StoreFactory


class ProductFactory(DjangoModelFactory):
    """Product with no ledger history; use ``catalog.services.create_product`` when the ledger must balance."""

    class Meta:
        model = Product

    store = factory.SubFactory(StoreFactory)
    name = factory.Faker("sentence", nb_words=2)
    sku = factory.Sequence(lambda n: f"SKU-{n:05d}")
    stock = 0
