"""Logging configuration.

Plain text by default; structured JSON (one object per line) when
``log_format=json``. Contextual fields are attached through the ``extra``
dict on log calls: product_url, proxy, failure_kind, attempt for check
failures; pass_number, concurrency for pass progress; stock for restocks.

SECURITY: Proxy passwords and the Telegram bot token are redacted.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

# Patterns that should be redacted from log output
_SENSITIVE_PATTERNS = re.compile(
    r"(password|passwd|token|secret|credential|authorization)"
    r"[\s]*[=:]\s*\S+",
    re.IGNORECASE,
)
# Telegram Bot API URLs embed the token: /bot123456:ABC-def/
_BOT_TOKEN_PATTERN = re.compile(r"/bot\d+:[\w-]+")

_CONTEXT_FIELDS = (
    "product_url",
    "proxy",
    "failure_kind",
    "attempt",
    "pass_number",
    "concurrency",
    "stock",
)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def sanitize(text: str) -> str:
    """Remove sensitive values from log text."""
    text = _BOT_TOKEN_PATTERN.sub("/bot[REDACTED]", text)
    return _SENSITIVE_PATTERNS.sub("[REDACTED]", text)


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields.

    Each entry contains at minimum: timestamp, level, logger, message.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize(record.getMessage()),
        }

        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = sanitize(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)


class RedactingFormatter(logging.Formatter):
    """Plain text formatter that applies the same redaction."""

    def format(self, record: logging.LogRecord) -> str:
        return sanitize(super().format(record))


def configure_logging(level: str = "INFO", *, json_format: bool = False) -> None:
    """Configure the root logger.

    Parameters
    ----------
    level:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    json_format:
        Emit JSON lines instead of plain text.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if json_format else RedactingFormatter(TEXT_FORMAT))
    root.addHandler(handler)

    # httpx logs every request URL at INFO, which includes the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)
