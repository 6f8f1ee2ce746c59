from django.core.management.base import BaseCommand
from warehouse.services import flag_stale_sessions


class Command(BaseCommand):
    help = "Flag active picking sessions with no activity inside the staleness window."

    def add_arguments(self, parser):
        parser.add_argument("--store", type=int, help="Limit to one store id")

    def handle(self, *args, **options):
        flagged = flag_stale_sessions(store_id=options.get("store"))
        self.stdout.write(self.style.SUCCESS(f"Flagged stale sessions: {len(flagged)}"))
