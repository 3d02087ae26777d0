"""Tests for structured log output."""

from __future__ import annotations

import logging
import sys

import orjson
import pytest

from memory_engine.core.logging import JsonFormatter, configure_logging, get_logger, record_context


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("memory_engine.test", logging.WARNING, __file__, 1, "indexed %s", ("a.md",), None)
    record.__dict__.update(extra)
    return record


def test_json_formatter_nests_context() -> None:
    line = JsonFormatter().format(_record(ctx_chunks=3, ctx_path=None, unrelated="x"))
    entry = orjson.loads(line)

    assert entry["msg"] == "indexed a.md"
    assert entry["level"] == "warning"
    assert entry["logger"] == "memory_engine.test"
    assert entry["context"] == {"chunks": 3, "path": None}
    assert "unrelated" not in line


def test_json_formatter_includes_exception_text() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    entry = orjson.loads(JsonFormatter().format(record))

    assert "RuntimeError: boom" in entry["error"]
    assert "context" not in entry


def test_record_context_strips_prefix() -> None:
    assert record_context(_record(ctx_reason="modified")) == {"reason": "modified"}


@pytest.fixture()
def restore_package_logger():
    logger = logging.getLogger("memory_engine")
    saved = (list(logger.handlers), logger.level)
    yield logger
    logger.handlers = saved[0]
    logger.setLevel(saved[1])


def test_configure_logging_replaces_its_own_handler_only(restore_package_logger, monkeypatch) -> None:
    monkeypatch.setenv("MEMX_LOG_LEVEL", "debug")
    monkeypatch.setenv("MEMX_LOG_JSON", "off")
    foreign = logging.NullHandler()
    restore_package_logger.addHandler(foreign)

    configure_logging()
    logger = configure_logging()

    assert logger.level == logging.DEBUG
    assert foreign in logger.handlers
    ours = [handler for handler in logger.handlers if handler is not foreign]
    assert len(ours) == 1
    assert not isinstance(ours[0].formatter, JsonFormatter)
    assert get_logger("memory_engine.sub").parent is logger
