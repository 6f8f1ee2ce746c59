"""Human-readable session codes: ``PREFIX-DDMMYYYY-NN``, numbered per store per day."""

import datetime

from common.db import atomic_with_timeout
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .models import SessionCodeSequence


def format_session_code(day: datetime.date, value: int, prefix: str | None = None) -> str:
    prefix = prefix or settings.PICKING_SESSION_CODE_PREFIX
    return f"{prefix}-{day:%d%m%Y}-{value:02d}"


def next_session_number(*, store_id: int, day: datetime.date) -> int:
    """Allocate the next number for ``(store, day)`` in its own short transaction.

    The sequence row lock is held only until this function returns, so
    concurrent session creation serializes on allocation alone.
    """

    for _ in range(3):
        with atomic_with_timeout():
            bumped = SessionCodeSequence.objects.filter(store_id=store_id, day=day).update(
                last_value=F("last_value") + 1
            )
            if bumped:
                return SessionCodeSequence.objects.values_list("last_value", flat=True).get(store_id=store_id, day=day)
            try:
                with transaction.atomic():
                    SessionCodeSequence.objects.create(store_id=store_id, day=day, last_value=1)
                return 1
            except IntegrityError:
                # Another creator inserted the row first; bump it on the next pass.
                continue
    raise IntegrityError("Could not allocate a session code")


def allocate_session_code(*, store_id: int, day: datetime.date | None = None) -> str:
    day = day or timezone.localdate()
    return format_session_code(day, next_session_number(store_id=store_id, day=day))
