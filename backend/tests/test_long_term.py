"""Tests for long-term memory files."""

from __future__ import annotations

from pathlib import Path

import pytest

from memory_engine.core.errors import IOFailure, StoreFailure
from memory_engine.memory.long_term import DEFAULT_FILES, MEMORY_FILE, LongTermMemory


def test_ensure_defaults_creates_missing_files_only(memory_dir: Path) -> None:
    memory = LongTermMemory(memory_dir)
    (memory_dir / "USER.md").write_text("# Mine\n", encoding="utf-8")

    created = memory.ensure_defaults()

    assert sorted(path.name for path in created) == sorted(set(DEFAULT_FILES) - {"USER.md"})
    assert memory.read("USER.md") == "# Mine\n"
    assert memory.read(MEMORY_FILE).startswith("# Long-term memory")
    assert memory.ensure_defaults() == []


@pytest.mark.parametrize("name", ["", "../MEMORY.md", "sub/NOTES.md", "..", "notes.txt", "a\\b.md"])
def test_invalid_names_are_rejected(memory_dir: Path, name: str) -> None:
    with pytest.raises(ValueError):
        LongTermMemory(memory_dir).path(name)


def test_write_is_atomic_and_notifies(memory_dir: Path) -> None:
    seen: list[Path] = []
    memory = LongTermMemory(memory_dir, on_write=seen.append)

    path = memory.write("NOTES.md", "one\n")

    assert path.read_text(encoding="utf-8") == "one\n"
    assert seen == [path]
    assert [p.name for p in memory_dir.iterdir()] == ["NOTES.md"]


def test_append_keeps_lines_terminated(memory_dir: Path) -> None:
    memory = LongTermMemory(memory_dir)
    (memory_dir / "NOTES.md").write_text("no newline", encoding="utf-8")

    memory.append("NOTES.md", "second")
    memory.remember("- fact")

    assert memory.read("NOTES.md") == "no newline\nsecond\n"
    assert memory.read(MEMORY_FILE) == "- fact\n"
    assert memory.read_lines("NOTES.md") == ("no newline", "second")


def test_missing_file_reads_empty(memory_dir: Path) -> None:
    memory = LongTermMemory(memory_dir)
    assert memory.read("SOUL.md") == ""
    assert memory.exists("SOUL.md") is False


def test_unreadable_file_raises_io_failure(memory_dir: Path) -> None:
    (memory_dir / "BAD.md").write_bytes(b"\xff\xfe broken")
    with pytest.raises(IOFailure):
        LongTermMemory(memory_dir).read("BAD.md")


def test_paths_lists_standard_files(memory_dir: Path) -> None:
    paths = LongTermMemory(memory_dir).paths()
    assert [path.name for path in paths] == list(DEFAULT_FILES)
    assert all(path.parent == memory_dir for path in paths)


def test_hook_failure_does_not_undo_or_raise_from_write(memory_dir: Path) -> None:
    def hook(path: Path) -> None:
        raise StoreFailure("index is locked")

    memory = LongTermMemory(memory_dir, on_write=hook)

    path = memory.remember("- fact")

    assert path.read_text(encoding="utf-8") == "- fact\n"
    assert memory.reindex(path) == "reindex pending: index is locked"
    assert LongTermMemory(memory_dir).reindex(path) is None
