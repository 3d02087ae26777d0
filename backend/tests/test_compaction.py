"""Tests for long-term memory compaction and restore."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import orjson
import pytest
from conftest import FakeLLM

from memory_engine.memory.analysis import MemoryAnalyzer
from memory_engine.memory.compaction import INDEX_FILE_NAME, MemoryCompactor
from memory_engine.memory.long_term import LongTermMemory


class SteppingClock:
    def __init__(self) -> None:
        self.moment = datetime(2024, 5, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        self.moment += timedelta(seconds=1)
        return self.moment


@pytest.fixture()
def memory(memory_dir: Path) -> LongTermMemory:
    return LongTermMemory(memory_dir)


def _compactor(memory: LongTermMemory, llm: FakeLLM, threshold: int = 50) -> MemoryCompactor:
    return MemoryCompactor(
        memory,
        MemoryAnalyzer(llm),
        memory.memory_dir / "archive",
        threshold=threshold,
        clock=SteppingClock(),
    )


def test_small_files_are_left_alone(memory: LongTermMemory) -> None:
    llm = FakeLLM()
    memory.write("MEMORY.md", "short\n")
    compactor = _compactor(memory, llm)

    assert compactor.needs_compaction("MEMORY.md") is False
    assert compactor.compact("MEMORY.md") is None
    assert llm.prompts == []


def test_compact_archives_original_and_records_it(memory: LongTermMemory, memory_dir: Path) -> None:
    original = "- fact\n" * 20
    memory.write("MEMORY.md", original)
    compactor = _compactor(memory, FakeLLM(responses=["- fact (x20)"]))

    record = compactor.compact("MEMORY.md")

    assert record is not None
    assert memory.read("MEMORY.md") == "- fact (x20)\n"
    archived = Path(record.original_path)
    assert archived.name == "MEMORY_20240501_120001_original.md"
    assert archived.read_text(encoding="utf-8") == original
    assert record.original_length == len(original)
    assert record.compressed_length == len("- fact (x20)\n")
    assert record.ratio.endswith("%")

    payload = orjson.loads((memory_dir / INDEX_FILE_NAME).read_bytes())
    assert payload["compressions"][0]["file_name"] == "MEMORY.md"
    assert compactor.history("MEMORY.md") == [record]
    assert compactor.history("USER.md") == []


def test_empty_compression_keeps_original(memory: LongTermMemory) -> None:
    original = "x" * 80 + "\n"
    memory.write("MEMORY.md", original)
    compactor = _compactor(memory, FakeLLM(responses=["   "]))

    assert compactor.compact("MEMORY.md") is None
    assert memory.read("MEMORY.md") == original
    assert compactor.history() == []
    assert not (memory.memory_dir / "archive").exists()


def test_force_compacts_below_threshold(memory: LongTermMemory) -> None:
    memory.write("USER.md", "tiny\n")
    compactor = _compactor(memory, FakeLLM(responses=["t"]))
    assert compactor.compact("USER.md", force=True) is not None
    assert memory.read("USER.md") == "t\n"


def test_restore_brings_back_latest_original(memory: LongTermMemory) -> None:
    first = "version one\n" * 10
    second = "version two\n" * 10
    memory.write("MEMORY.md", first)
    compactor = _compactor(memory, FakeLLM(responses=["one", "two"]))
    compactor.compact("MEMORY.md")
    memory.write("MEMORY.md", second)
    compactor.compact("MEMORY.md")

    path = compactor.restore("MEMORY.md")

    assert path == memory.path("MEMORY.md")
    assert memory.read("MEMORY.md") == second
    backups = list((memory.memory_dir / "archive").glob("MEMORY_*_backup.md"))
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "two\n"


def test_restore_without_history_returns_none(memory: LongTermMemory) -> None:
    assert _compactor(memory, FakeLLM()).restore("MEMORY.md") is None


def test_compact_all_only_touches_oversized_files(memory: LongTermMemory) -> None:
    memory.ensure_defaults()
    memory.write("SOUL.md", "# Persona\n" + "- be brief\n" * 30)
    compactor = _compactor(memory, FakeLLM(default="# Persona\n- be brief"), threshold=200)

    records = compactor.compact_all()

    assert [record.file_name for record in records] == ["SOUL.md"]
