import logging

from django.core.management.base import BaseCommand
from inventory.selectors import stock_drift_report
from stores.models import Store

logger = logging.getLogger("fulfillment.inventory")


class Command(BaseCommand):
    help = "Compare cached product stock with the inventory ledger and log every anomaly."

    def add_arguments(self, parser):
        parser.add_argument("--store", type=int, help="Limit the audit to one store id")

    def handle(self, *args, **options):
        stores = Store.objects.all()
        if options.get("store"):
            stores = stores.filter(pk=options["store"])
        anomalies = 0
        for store in stores.iterator():
            for row in stock_drift_report(store_id=store.id, only_anomalies=True):
                anomalies += 1
                logger.warning("stock_anomaly", extra={"event": "stock_anomaly", "store_id": store.id, **row})
        self.stdout.write(self.style.SUCCESS(f"Stock anomalies found: {anomalies}"))
