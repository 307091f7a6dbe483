"""
Logging setup for basecore services.

Configures the root logger once per process. Records are rendered as JSON
lines by default; any fields passed through ``extra={...}`` are merged into
the JSON object. Phone numbers are masked before output.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone

from basecore.settings import get_settings

# Attributes present on every LogRecord; anything else came from `extra`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}

# E.164 numbers, including the whatsapp:+E164 addresses the transports use
_PHONE_PATTERN = re.compile(r"(?<![\w+])\+\d{8,15}(?!\d)")

# `extra` keys whose whole value is a phone number, in any format
_PHONE_KEYS = frozenset({"to", "phone", "recipient_phone"})

_configured = False


def mask_value(phone: str) -> str:
    """Mask one phone number, keeping the first 4 and last 2 characters."""
    if len(phone) <= 6:
        return "*" * len(phone)
    return phone[:4] + "*" * (len(phone) - 6) + phone[-2:]


def mask_phone(text: str) -> str:
    """Mask +E164 phone numbers found anywhere in the text."""
    return _PHONE_PATTERN.sub(lambda match: mask_value(match.group(0)), text)


class JSONFormatter(logging.Formatter):
    """JSON line formatter carrying `extra` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": mask_phone(record.getMessage()),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            if isinstance(value, str):
                masked = mask_phone(value)
                if key in _PHONE_KEYS and masked == value:
                    masked = mask_value(value)
                value = masked
            entry[key] = value

        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        return mask_phone(super().format(record))


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure root logging for the process.

    Safe to call multiple times; only the first call installs handlers.
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    fmt = fmt or settings.LOG_FORMAT

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Quieten chatty libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True
