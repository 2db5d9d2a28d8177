"""
Logging setup, called once from the application lifespan.

Two formats:
  - text: "2026-01-01 12:00:00 INFO markethub.services.purchase_service - ..."
  - json: one object per line, for log shippers

Module loggers (logging.getLogger(__name__)) propagate to the root
handler installed here.
"""

import json
import logging
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = record.__dict__.get("request_id")
        if request_id is not None:
            log["request_id"] = request_id
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


_handler: logging.Handler | None = None


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install the root handler, replacing the one from a previous call."""
    global _handler

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s"))

    if _handler is not None:
        logging.root.removeHandler(_handler)
    logging.root.addHandler(handler)
    _handler = handler
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
