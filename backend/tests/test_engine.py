"""End-to-end tests for the engine wiring."""

from __future__ import annotations

import time
from datetime import date, datetime
from pathlib import Path

from conftest import FakeLLM

from memory_engine.core.config import Settings
from memory_engine.engine import MemoryEngine
from memory_engine.retrieval import ResultType


def _wait_for(predicate, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


def test_initialize_creates_defaults_and_indexes(engine: MemoryEngine, memory_dir: Path) -> None:
    stats = engine.initialize()

    assert {p.name for p in memory_dir.glob("*.md")} == {"MEMORY.md", "USER.md", "SOUL.md", "IDENTITY.md"}
    assert stats.indexed == 4
    assert engine.statistics()["files"] == 4
    assert engine.store.health_check()["ok"] is True


def test_remembered_fact_is_searchable(engine: MemoryEngine) -> None:
    engine.initialize()
    engine.long_term.remember("- The wifi password is on the fridge")

    results = engine.search("wifi")

    assert results[0].result_type is ResultType.CHUNK
    assert results[0].file_path.endswith("MEMORY.md")


def test_without_llm_collaborator_services_are_absent(settings: Settings) -> None:
    with MemoryEngine(settings) as engine:
        assert engine.manager is None
        assert engine.compactor is None
        assert engine.search("anything") == []


def test_manager_is_wired_when_llm_given(engine: MemoryEngine, fake_llm: FakeLLM) -> None:
    fake_llm.responses = ['{"shouldUpdate": false, "reason": "chit-chat"}']

    outcome = engine.manager.record_exchange([("user", "what a lovely morning")])

    assert outcome.log_path is not None
    assert engine.search("lovely")[0].file_path == str(outcome.log_path)


def test_archive_logs_moves_and_reindexes(engine: MemoryEngine, memory_dir: Path) -> None:
    old = memory_dir / "2020-01-15.md"
    old.write_text("# Conversation log 2020-01-15\n\nbought a kayak\n", encoding="utf-8")
    engine.initialize()

    moved = engine.archive_logs(days_to_keep=30)

    target = memory_dir / "archive" / "2020-01" / "2020-01-15.md"
    assert moved == [(old, target)]
    assert engine.store.get_metadata(str(old)) is None
    assert engine.store.get_metadata(str(target)) is not None
    assert {r.file_path for r in engine.search("kayak")} == {str(target)}
    assert engine.daily_log.search("kayak", start=date(2020, 1, 1)) == [target]


def test_watcher_indexes_new_files(engine: MemoryEngine, memory_dir: Path) -> None:
    engine.start(watch=True)
    note = memory_dir / f"{datetime.now():%Y%m%d}-note.md"
    note.write_text("the plumber comes on tuesday\n", encoding="utf-8")

    assert _wait_for(lambda: engine.store.get_metadata(str(note)) is not None)
    assert _wait_for(lambda: bool(engine.store.full_text_search("plumber")))


def test_close_is_idempotent(settings: Settings) -> None:
    engine = MemoryEngine(settings)
    engine.start(watch=False)
    engine.close()
    engine.close()
