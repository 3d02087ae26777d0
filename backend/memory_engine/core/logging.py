"""Structured logging for the memory engine.

Records go to stderr so command output on stdout stays clean. Keyword
context is attached with ``extra={"ctx_<name>": value}`` and shows up under
``context`` in the JSON form.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

PACKAGE_LOGGER = "memory_engine"
CONTEXT_PREFIX = "ctx_"
_HANDLER_NAME = "memory_engine.stderr"
_PLAIN_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


def _env_level() -> str:
    return os.environ.get("MEMX_LOG_LEVEL", "INFO").upper()


def _env_json() -> bool:
    return os.environ.get("MEMX_LOG_JSON", "1").strip().lower() not in {"0", "false", "no", "off"}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Collect ``ctx_*`` extras from a record, keyed without the prefix."""
    return {
        key[len(CONTEXT_PREFIX) :]: value
        for key, value in vars(record).items()
        if key.startswith(CONTEXT_PREFIX)
    }


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "ts": stamp.isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        context = record_context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str, option=orjson.OPT_NON_STR_KEYS).decode("utf-8")


def configure_logging(level: str | int | None = None, use_json: bool | None = None) -> logging.Logger:
    """Install the engine's stderr handler; calling again swaps it in place."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(_env_level() if level is None else level)
    as_json = _env_json() if use_json is None else use_json

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JsonFormatter() if as_json else logging.Formatter(_PLAIN_FORMAT))
    for existing in list(logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logger.removeHandler(existing)
    logger.addHandler(handler)
    logging.captureWarnings(True)
    return logger


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    if not logging.getLogger(PACKAGE_LOGGER).handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger", "record_context"]
