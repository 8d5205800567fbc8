"""
Structured logging setup.

JSON lines in production, a plain text format for local development.
setup_logging() is called once from the application lifespan.
"""

import json
import logging
from datetime import datetime, timezone

_EXTRA_FIELDS = ("path", "method", "user_id", "product_id", "error_code", "status_code")


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    root = logging.getLogger()
    # drop the handler from a previous call
    for existing in list(root.handlers):
        if getattr(existing, "_catalog_handler", False):
            root.removeHandler(existing)
    handler._catalog_handler = True
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
