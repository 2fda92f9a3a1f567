"""Centralized logging configuration with JSON-formatted extras."""

import json
import logging
import sys

from localseo.config import settings


class JSONExtrasFormatter(logging.Formatter):
    """Formatter that outputs a readable log line with extras as JSON.

    Output format:
        2026-01-15 10:30:45 | INFO     | localseo.services | Message {"key": "value"}
    """

    RESERVED_ATTRS = frozenset(logging.LogRecord(
        "", logging.INFO, "", 0, "", None, None
    ).__dict__.keys()) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        timestamp = self.formatTime(record, self.datefmt)
        line = f"{timestamp} | {record.levelname:<8} | {record.name} | {record.message}"

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.RESERVED_ATTRS and not key.startswith("_")
        }
        if extras:
            try:
                line = f"{line} {json.dumps(extras, default=str, ensure_ascii=False)}"
            except (TypeError, ValueError):
                line = f"{line} {extras!r}"

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line = f"{line}\n{record.exc_text}"

        return line


def setup_logging(level: str | None = None) -> None:
    """Configure the 'localseo' logger with console output and JSON extras."""
    logger = logging.getLogger("localseo")
    resolved_level = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(resolved_level, int):
        resolved_level = logging.INFO
    logger.setLevel(resolved_level)

    # Called from lifespan and scripts; keep a single handler
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(JSONExtrasFormatter(datefmt="%Y-%m-%d %H:%M:%S"))

    logger.addHandler(handler)
    logger.propagate = False
