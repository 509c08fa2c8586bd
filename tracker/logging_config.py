"""Logging setup driven by LoggingSettings.

JSON lines by default (one object per record), plain text for local
debugging.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from .config import LogFormat, settings

_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render a log record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Fields passed through `extra=`
        for key, value in vars(record).items():
            if key not in _RESERVED and key not in payload:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    level: str | None = None,
    fmt: LogFormat | str | None = None,
    file: str | None = None,
) -> None:
    """Configure the root logger. Safe to call more than once."""
    level = (level or settings.logging.level).upper()
    fmt = LogFormat(fmt or settings.logging.format)
    file = file if file is not None else settings.logging.file

    formatter: logging.Formatter
    if fmt is LogFormat.JSON:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if file:
        handlers.append(logging.FileHandler(file, encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    # SQL echo is controlled by DB_ECHO; keep the driver loggers quiet otherwise.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
