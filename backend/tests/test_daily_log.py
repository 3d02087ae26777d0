"""Tests for dated conversation logs."""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

from memory_engine.memory.daily_log import DailyLog, log_date


class Clock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


def test_log_date_parses_only_dated_names() -> None:
    assert log_date(Path("2024-05-01.md")) == date(2024, 5, 1)
    assert log_date(Path("2024-13-01.md")) is None
    assert log_date(Path("MEMORY.md")) is None


def test_append_writes_header_once(memory_dir: Path) -> None:
    log = DailyLog(memory_dir, clock=Clock(datetime(2024, 5, 1, 14, 5, 9)))

    path = log.append("user", "hello there\n")
    log.append("assistant", "hi")

    assert path == memory_dir / "2024-05-01.md"
    assert path.read_text(encoding="utf-8") == (
        "# Conversation log 2024-05-01\n\n"
        "### 14:05:09 user\nhello there\n\n"
        "### 14:05:09 assistant\nhi\n\n"
    )
    assert log.read(date(2024, 5, 1)) == path.read_text(encoding="utf-8")
    assert log.read(date(2024, 5, 2)) == ""


def test_search_is_case_insensitive_and_respects_range(memory_dir: Path) -> None:
    clock = Clock(datetime(2024, 5, 1, 9, 0, 0))
    log = DailyLog(memory_dir, clock=clock)
    log.append("user", "The INVOICE is late")
    clock.moment = datetime(2024, 5, 3, 9, 0, 0)
    log.append("user", "invoice paid")
    log.append("user", "unrelated")

    assert [p.name for p in log.search("invoice")] == ["2024-05-01.md", "2024-05-03.md"]
    assert [p.name for p in log.search("invoice", start=date(2024, 5, 2))] == ["2024-05-03.md"]
    assert [p.name for p in log.search("invoice", end=date(2024, 5, 2))] == ["2024-05-01.md"]
    assert log.search("  ") == []
    assert log.search_lines("invoice")[1][1] == ["invoice paid"]


def test_archive_moves_old_logs_and_keeps_them_searchable(memory_dir: Path) -> None:
    clock = Clock(datetime(2024, 3, 30, 8, 0, 0))
    log = DailyLog(memory_dir, clock=clock)
    old = log.append("user", "tax receipt")
    clock.moment = datetime(2024, 5, 1, 8, 0, 0)
    recent = log.append("user", "tax form")

    moved = log.archive(days_to_keep=7)

    target = memory_dir / "archive" / "2024-03" / "2024-03-30.md"
    assert moved == [(old, target)]
    assert target.exists() and not old.exists()
    assert recent.exists()
    assert sorted(p.name for p in log.search("tax")) == ["2024-03-30.md", "2024-05-01.md"]
    assert log.archive(days_to_keep=7) == []


def test_archive_does_not_overwrite_existing_target(memory_dir: Path) -> None:
    log = DailyLog(memory_dir, clock=Clock(datetime(2024, 5, 1, 8, 0, 0)))
    existing = memory_dir / "archive" / "2024-03" / "2024-03-30.md"
    existing.parent.mkdir(parents=True)
    existing.write_text("archived\n", encoding="utf-8")
    (memory_dir / "2024-03-30.md").write_text("duplicate\n", encoding="utf-8")

    assert log.archive(days_to_keep=1) == []
    assert existing.read_text(encoding="utf-8") == "archived\n"
    assert (memory_dir / "2024-03-30.md").exists()


def test_today_path_and_log_files_skip_other_markdown(memory_dir: Path) -> None:
    log = DailyLog(memory_dir, clock=Clock(datetime(2024, 5, 1, 8, 0, 0)))
    (memory_dir / "MEMORY.md").write_text("# Memory\n", encoding="utf-8")
    log.append("user", "hi")

    assert log.today_path() == memory_dir / "2024-05-01.md"
    assert log.log_files() == [(date(2024, 5, 1), memory_dir / "2024-05-01.md")]
