"""Transaction helpers shared by the stock-mutating services."""

from contextlib import contextmanager

from django.conf import settings
from django.db import connection, transaction


@contextmanager
def atomic_with_timeout(timeout_ms: int | None = None):
    """Open an atomic block that will not wait on a row lock forever.

    On PostgreSQL a transaction-local ``lock_timeout`` is set for the enclosing
    transaction, so a stalled client holding a lock makes the waiting call fail
    with an ``OperationalError`` instead of hanging. Other backends get a plain
    atomic block.
    """

    if timeout_ms is None:
        timeout_ms = int(getattr(settings, "FULFILLMENT_LOCK_TIMEOUT_MS", 5000))
    with transaction.atomic():
        if connection.vendor == "postgresql" and timeout_ms > 0:
            with connection.cursor() as cursor:
                cursor.execute("SELECT set_config('lock_timeout', %s, true)", [f"{int(timeout_ms)}ms"])
        yield
