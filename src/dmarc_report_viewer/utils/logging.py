"""Logging setup for the CLI and the background task."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from rich.logging import RichHandler

from dmarc_report_viewer.config.settings import LoggingSettings

# Attributes every LogRecord carries; anything else was passed via ``extra``.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)),
) | {"message", "asctime", "taskName"}

_NOISY_LOGGERS = ("aioimaplib", "asyncio")


def _jsonable(value: object) -> Any:
    """Return the value if JSON can encode it, otherwise its string form."""
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonLogFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON string representation.
        """
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            payload[key] = _jsonable(value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def configure_logging(*, settings: LoggingSettings) -> None:
    """Configure root logging.

    Args:
        settings: Logging settings (level and JSON/human output).
    """
    level_name = settings.level.strip().upper() if settings.level else "INFO"
    level = logging.getLevelNamesMapping().get(level_name, logging.INFO)

    handler: logging.Handler
    if settings.json_logs:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonLogFormatter())
    else:
        handler = RichHandler(show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%X]"))
    handler.setLevel(level)

    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
