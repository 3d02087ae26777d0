"""Dated conversation log files (``YYYY-MM-DD.md``)."""

from __future__ import annotations

import re
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable

from memory_engine.core.errors import IOFailure
from memory_engine.core.logging import get_logger

LOGGER = get_logger(__name__)

_LOG_NAME = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\.md$")


def log_date(path: Path) -> date | None:
    """Return the day a log file covers, or ``None`` for non-log files."""
    match = _LOG_NAME.match(path.name)
    if match is None:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


class DailyLog:
    """Append-only day files in the memory directory.

    Old days are moved to ``archive/YYYY-MM/`` and stay searchable there.
    """

    def __init__(self, memory_dir: Path, clock: Callable[[], datetime] = datetime.now) -> None:
        self.memory_dir = memory_dir
        self.clock = clock
        self._lock = threading.Lock()

    @property
    def archive_dir(self) -> Path:
        return self.memory_dir / "archive"

    def path_for(self, day: date) -> Path:
        return self.memory_dir / f"{day.isoformat()}.md"

    def today_path(self) -> Path:
        return self.path_for(self.clock().date())

    def append(self, role: str, content: str) -> Path:
        """Append one conversation turn to today's log and return its path."""
        moment = self.clock()
        path = self.path_for(moment.date())
        entry = f"### {moment.strftime('%H:%M:%S')} {role}\n{content.rstrip()}\n\n"
        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                is_new = not path.exists()
                with path.open("a", encoding="utf-8") as fh:
                    if is_new:
                        fh.write(f"# Conversation log {moment.date().isoformat()}\n\n")
                    fh.write(entry)
            except OSError as exc:
                raise IOFailure(f"cannot append to {path}: {exc}") from exc
        return path

    def read(self, day: date) -> str:
        path = self.path_for(day)
        if not path.exists():
            return ""
        return path.read_text(encoding="utf-8")

    def log_files(self) -> list[tuple[date, Path]]:
        """Every dated log under the memory directory, archive included, oldest first."""
        if not self.memory_dir.exists():
            return []
        found = []
        for path in self.memory_dir.rglob("*.md"):
            day = log_date(path)
            if day is not None and path.is_file():
                found.append((day, path))
        found.sort(key=lambda item: (item[0], str(item[1])))
        return found

    def search(self, keyword: str, start: date | None = None, end: date | None = None) -> list[Path]:
        """Log files whose text contains ``keyword`` (case-insensitive)."""
        return [path for path, _ in self.search_lines(keyword, start, end)]

    def search_lines(
        self,
        keyword: str,
        start: date | None = None,
        end: date | None = None,
        max_lines: int = 3,
    ) -> list[tuple[Path, list[str]]]:
        """Like ``search`` but also returns up to ``max_lines`` matching lines per file."""
        needle = keyword.strip().casefold()
        if not needle:
            return []
        matches: list[tuple[Path, list[str]]] = []
        for day, path in self.log_files():
            if start is not None and day < start:
                continue
            if end is not None and day > end:
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.warning("Skipping unreadable log %s: %s", path, exc)
                continue
            if needle not in text.casefold():
                continue
            lines = [line for line in text.splitlines() if needle in line.casefold()]
            matches.append((path, lines[:max_lines]))
        return matches

    def archive(self, days_to_keep: int) -> list[tuple[Path, Path]]:
        """Move top-level logs older than ``days_to_keep`` days into ``archive/YYYY-MM/``."""
        cutoff = self.clock().date() - timedelta(days=days_to_keep)
        moved: list[tuple[Path, Path]] = []
        if not self.memory_dir.exists():
            return moved
        for path in sorted(self.memory_dir.glob("*.md")):
            day = log_date(path)
            if day is None or day >= cutoff:
                continue
            target = self.archive_dir / day.strftime("%Y-%m") / path.name
            if target.exists():
                LOGGER.warning("Archive target %s already exists, leaving %s in place", target, path)
                continue
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                path.rename(target)
            except OSError as exc:
                LOGGER.warning("Failed to archive %s: %s", path, exc)
                continue
            moved.append((path, target))
        if moved:
            LOGGER.info("Archived %s log files", len(moved), extra={"ctx_days_to_keep": days_to_keep})
        return moved


__all__ = ["DailyLog", "log_date"]
