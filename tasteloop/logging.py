"""Structured logging configuration."""

import json
import logging
import sys
from datetime import datetime, timezone

# Attributes passed through ``extra=`` that are worth surfacing on every line
CONTEXT_FIELDS = ("user_id", "item_id", "domain")

QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "apscheduler.executors.default")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _context(record: logging.LogRecord) -> dict:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class StructuredFormatter(logging.Formatter):
    """Pipe-separated lines: ``ts | LEVEL | logger | message [k=v ...]``."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [_utc_timestamp(), record.levelname.ljust(8), record.name, record.getMessage()]
        line = " | ".join(parts)

        context = _context(record)
        if context:
            line += " " + " ".join(f"{key}={value}" for key, value in context.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "plain") -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: ``plain`` for pipe-separated lines, ``json`` for JSON lines
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(JsonFormatter() if fmt == "json" else StructuredFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
