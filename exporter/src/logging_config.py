"""
Structured JSON logging configuration for the exporter.

Provides a custom JSON formatter and a ``setup_logging()`` function
that replaces the default logging configuration with structured output.
Each log record is emitted as a single JSON line containing
``timestamp``, ``level``, ``logger`` and ``message``, plus the device
context (``device``, ``provider``, ``category``, ``file``) when it was
passed through ``extra`` and the formatted traceback for exceptions.

CHANGELOG:
- 2026-10-19: Initial creation
- 2026-10-19: Document emitted fields

TODO:
- None
"""

import json
import logging
from datetime import UTC, datetime

# Record attributes copied into the JSON line when present.
CONTEXT_FIELDS: tuple[str, ...] = ("device", "provider", "category", "file")


class JSONFormatter(logging.Formatter):
    """Logging formatter that outputs a single JSON object per line.

    Fields:
        timestamp: ISO 8601 creation time in UTC.
        level: Level name, e.g. ``WARNING``.
        logger: Name of the emitting logger.
        message: Fully formatted message.
        device, provider, category, file: Poll context, only present
            when passed via ``extra``.
        exc_info: Formatted traceback, only present for exceptions.

    Non-ASCII text (``°C``, room names) is written as is.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format *record* as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with structured JSON output.

    Removes any existing handlers on the root logger and installs
    a single ``StreamHandler`` using :class:`JSONFormatter`.

    Args:
        level: Logging level (number or name) for the root logger.
            Defaults to ``logging.INFO``.
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicate output.
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
