"""Named long-term memory files (``MEMORY.md``, ``USER.md`` ...)."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Callable, Mapping

from memory_engine.core.errors import IOFailure, MemoryEngineError
from memory_engine.core.logging import get_logger
from memory_engine.utils.text import split_lines

LOGGER = get_logger(__name__)

MEMORY_FILE = "MEMORY.md"
USER_FILE = "USER.md"
SOUL_FILE = "SOUL.md"
IDENTITY_FILE = "IDENTITY.md"

DEFAULT_FILES: Mapping[str, str] = {
    MEMORY_FILE: "# Long-term memory\n\n## Decisions\n\n## Preferences\n\n## Key facts\n\n## Projects\n",
    USER_FILE: "# User profile\n\n## Basics\n\n## Preferred language\n\n## Work habits\n\n## Background\n",
    SOUL_FILE: "# Persona\n\n## Traits\n\n## Tone\n\n## Working style\n\n## Rules\n",
    IDENTITY_FILE: "# Identity\n\n- **Name:** (unset)\n- **Role:** Personal assistant\n",
}

WriteHook = Callable[[Path], None]


class LongTermMemory:
    """Read and write memory files addressed by bare file name.

    Writes replace the file atomically and then call ``on_write`` with the
    path so the caller can re-index it.
    """

    def __init__(self, memory_dir: Path, on_write: WriteHook | None = None) -> None:
        self.memory_dir = memory_dir
        self.on_write = on_write

    def path(self, name: str) -> Path:
        if not name or name != Path(name).name or name in {".", ".."} or "\\" in name:
            raise ValueError(f"invalid memory file name: {name!r}")
        if not name.endswith(".md"):
            raise ValueError(f"memory files must be markdown: {name!r}")
        return self.memory_dir / name

    def exists(self, name: str) -> bool:
        return self.path(name).exists()

    def paths(self) -> list[Path]:
        return [self.path(name) for name in DEFAULT_FILES]

    def ensure_defaults(self) -> list[Path]:
        """Create any missing standard file with its section skeleton."""
        created = []
        for name, body in DEFAULT_FILES.items():
            target = self.path(name)
            if not target.exists():
                self._write(target, body)
                created.append(target)
        if created:
            LOGGER.info("Created default memory files", extra={"ctx_files": [p.name for p in created]})
        return created

    def read(self, name: str) -> str:
        target = self.path(name)
        if not target.exists():
            return ""
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise IOFailure(f"cannot read {target}: {exc}") from exc

    def read_lines(self, name: str) -> tuple[str, ...]:
        return tuple(split_lines(self.read(name)))

    def write(self, name: str, content: str, reindex: bool = True) -> Path:
        target = self.path(name)
        self._write(target, content)
        if reindex:
            self.reindex(target)
        return target

    def reindex(self, target: Path) -> str | None:
        """Run the write hook for ``target``.

        The file is already on disk at this point, so a hook failure is logged
        and returned as a message. The index stays stale until the next scan.
        """
        if self.on_write is None:
            return None
        try:
            self.on_write(target)
        except MemoryEngineError as exc:
            LOGGER.warning(
                "Re-index of %s deferred: %s",
                target.name,
                exc,
                extra={"ctx_error_code": exc.error_code},
            )
            return f"reindex pending: {exc}"
        return None

    def append(self, name: str, content: str, reindex: bool = True) -> Path:
        existing = self.read(name)
        if existing and not existing.endswith("\n"):
            existing += "\n"
        body = content if content.endswith("\n") else f"{content}\n"
        return self.write(name, existing + body, reindex=reindex)

    def remember(self, content: str) -> Path:
        return self.append(MEMORY_FILE, content)

    def _write(self, target: Path, content: str) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(content)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise IOFailure(f"cannot write {target}: {exc}") from exc


__all__ = [
    "LongTermMemory",
    "DEFAULT_FILES",
    "MEMORY_FILE",
    "USER_FILE",
    "SOUL_FILE",
    "IDENTITY_FILE",
]
