"""JSON log output for the fulfillment loggers.

Services log a short event name as the message and the context as ``extra``::

    logger.info("order_status_changed", extra={"event": "order_status_changed", "order_id": 7})

``JsonFormatter`` turns that into one JSON object per line and
``SamplingFilter`` thins out the chatty INFO events (pick/pack increments)
without ever dropping the audit trail.
"""

import json
import logging
import random
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else on the record came from ``extra``.
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}


def event_name(record: logging.LogRecord) -> str:
    """The record's ``event`` extra, falling back to its raw message."""

    event = getattr(record, "event", None)
    if event:
        return str(event)
    return record.msg if isinstance(record.msg, str) else ""


def _jsonable(value):
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    - Base fields: ``time`` (ISO-8601 UTC), ``level``, ``logger``, ``event``, ``message``.
    - Every ``extra`` attribute is merged in; values that do not serialize are stringified.
    - Exceptions are rendered under ``exc``.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        message = record.getMessage()
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": event_name(record),
        }
        if message != payload["event"]:
            payload["message"] = message
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in payload:
                continue
            payload[key] = _jsonable(value)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class SamplingFilter(logging.Filter):
    """Keep a fraction of the records at the sampled levels.

    - ``rate``: fraction in [0.0, 1.0] of matching records to keep.
    - ``levels``: level names subject to sampling; other levels always pass.
    - ``allow_events``: event names that are never sampled (status changes,
      ledger movements, session lifecycle).
    """

    def __init__(self, rate: float = 1.0, levels: list[str] | None = None, allow_events: list[str] | None = None):
        super().__init__()
        self.rate = min(1.0, max(0.0, float(rate)))
        self.levels = frozenset(levels or ["INFO"])
        self.allow_events = frozenset(allow_events or [])

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if record.levelname not in self.levels:
            return True
        if event_name(record) in self.allow_events:
            return True
        if self.rate >= 1.0:
            return True
        if self.rate <= 0.0:
            return False
        return random.random() < self.rate
