"""
Logging configuration for the FreightBid service.
Call setup_logging() once at app startup.
"""
import json
import logging
from datetime import datetime, timezone

from freightbid.config import settings


class JSONFormatter(logging.Formatter):
    """Structured JSON log lines for machine parsing."""
    EXTRA_KEYS = ("vendor_id", "auction_id", "bidder_id", "customer_id", "reason")

    def format(self, record):
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "func": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        for key in self.EXTRA_KEYS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Readable console format."""

    def format(self, record):
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        line = f"{ts} [{record.levelname[0]}] {record.name}: {record.getMessage()}"
        if record.exc_info and record.exc_info[0]:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level=None, json_logs=None):
    """
    Configure the root logger.

    Args:
        level: Override log level (default: settings.LOG_LEVEL)
        json_logs: Force JSON format (default: settings.LOG_JSON)
    """
    if level is None:
        level = settings.LOG_LEVEL.upper()
    if json_logs is None:
        json_logs = settings.LOG_JSON

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(JSONFormatter() if json_logs else HumanFormatter())
    root.addHandler(console)

    # SQL echo is controlled by DEBUG on the engine
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
