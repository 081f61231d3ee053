"""Structured JSON logging shared by the dispatch service and its tools."""

import json
import logging
import sys
from collections.abc import Sequence
from datetime import datetime, timezone

# Anything on a LogRecord beyond these came from `extra={...}` and is
# emitted as a top-level key.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    | {"message", "asctime"}
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the emitting service."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self._service:
            log_entry["service"] = self._service

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_entry[key] = value

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def mask_phone(phone: str | None) -> str | None:
    """Hide all but the country prefix and last four digits of a number.

    ``+15551234567`` becomes ``+1******4567``.
    """
    if not phone:
        return phone
    if len(phone) <= 6:
        return "*" * len(phone)
    return f"{phone[:2]}{'*' * (len(phone) - 6)}{phone[-4:]}"


def setup_logging(
    level: str = "INFO",
    suppress: Sequence[str] = (),
    service: str | None = None,
) -> None:
    """Configure root logger with JSON formatter to stdout.

    Args:
        level: Root log level (e.g. "INFO", "DEBUG").
        suppress: Logger names pinned to WARNING (e.g. "httpx",
                  "confluent_kafka") to cut third-party noise.
        service: Value of the ``service`` key on every record.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(service))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    for name in suppress:
        logging.getLogger(name).setLevel(logging.WARNING)
