"""Apply update decisions to long-term memory files."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping

from memory_engine.core.errors import DecodeFailure, IOFailure
from memory_engine.core.logging import get_logger
from memory_engine.memory.long_term import MEMORY_FILE, LongTermMemory
from memory_engine.models.decisions import UpdateDecision, UpdateScope
from memory_engine.utils.text import join_lines

LOGGER = get_logger(__name__)


class LineOperation(str, Enum):
    UPDATE = "update"
    ADD = "add"


class UpdateStatus(str, Enum):
    NO_UPDATE_NEEDED = "no_update_needed"
    NEEDS_CONFIRMATION = "needs_confirmation"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class LineDirective:
    line_number: int
    content: str
    operation: LineOperation = LineOperation.UPDATE


@dataclass(frozen=True, slots=True)
class PatchResult:
    lines: tuple[str, ...]
    applied: int
    skipped: tuple[str, ...] = ()


@dataclass(slots=True)
class UpdateResult:
    status: UpdateStatus
    target: str
    path: Path | None = None
    applied: int = 0
    skipped: list[str] = field(default_factory=list)
    detail: str | None = None


def parse_directive(raw: Any) -> LineDirective:
    """Validate one raw directive; raises ``ValueError`` describing the defect."""
    if isinstance(raw, LineDirective):
        directive = raw
    else:
        if not isinstance(raw, Mapping):
            raise ValueError(f"directive is not an object: {raw!r}")
        if "lineNumber" not in raw or "content" not in raw:
            raise ValueError("directive needs lineNumber and content")
        number = raw["lineNumber"]
        if isinstance(number, bool):
            raise ValueError("lineNumber must be an integer")
        if isinstance(number, str) and number.strip().lstrip("-").isdigit():
            number = int(number.strip())
        if not isinstance(number, int):
            raise ValueError("lineNumber must be an integer")
        content = raw["content"]
        if not isinstance(content, str):
            raise ValueError("content must be a string")
        operation = raw.get("operation") or LineOperation.UPDATE.value
        try:
            op = LineOperation(str(operation).strip().lower())
        except ValueError:
            raise ValueError(f"unknown operation {operation!r}") from None
        directive = LineDirective(line_number=number, content=content, operation=op)
    if directive.line_number < 1:
        raise ValueError(f"lineNumber must be 1 or greater, got {directive.line_number}")
    return directive


def apply_line_directives(lines: tuple[str, ...], directives: Iterable[Any]) -> PatchResult:
    """Apply directives in order, each against the result of the previous one.

    ``update`` replaces the numbered line and ``add`` inserts before it. A
    number past the end appends instead of failing. Malformed directives are
    skipped and reported in ``PatchResult.skipped``.
    """
    current = tuple(lines)
    applied = 0
    skipped: list[str] = []
    for position, raw in enumerate(directives, start=1):
        try:
            directive = parse_directive(raw)
        except ValueError as exc:
            LOGGER.warning("Skipping line directive #%s: %s", position, exc)
            skipped.append(f"#{position}: {exc}")
            continue
        index = directive.line_number - 1
        if index >= len(current):
            current = current + (directive.content,)
        elif directive.operation is LineOperation.UPDATE:
            current = current[:index] + (directive.content,) + current[index + 1 :]
        else:
            current = current[:index] + (directive.content,) + current[index:]
        applied += 1
    return PatchResult(lines=current, applied=applied, skipped=tuple(skipped))


class MemoryUpdater:
    """Turns an ``UpdateDecision`` into a write on a long-term memory file.

    There is no concurrency check: two updates racing on one file end with
    the later write.
    """

    def __init__(self, memory: LongTermMemory, fallback_file: str = MEMORY_FILE) -> None:
        self.memory = memory
        self.fallback_file = fallback_file

    def apply(self, name: str, decision: UpdateDecision, new_content: str) -> UpdateResult:
        if decision.update_scope is UpdateScope.NEEDS_CONFIRMATION:
            return UpdateResult(
                status=UpdateStatus.NEEDS_CONFIRMATION,
                target=name,
                detail=decision.confirmation_required or decision.uncertain_parts or decision.reason or None,
            )
        if not decision.needs_update or decision.update_scope is UpdateScope.NONE:
            return UpdateResult(status=UpdateStatus.NO_UPDATE_NEEDED, target=name, detail=decision.reason or None)

        try:
            if decision.update_scope is UpdateScope.WHOLE_FILE:
                return self._replace_whole_file(name, decision, new_content)
            return self._patch_lines(name, decision)
        except (IOFailure, ValueError) as exc:
            LOGGER.error("Memory update of %s failed: %s", name, exc)
            return UpdateResult(status=UpdateStatus.FAILED, target=name, detail=str(exc))

    def apply_response(self, name: str, raw: str | bytes | None, new_content: str) -> UpdateResult:
        """Parse a raw decision and apply it; undecodable input appends to the fallback file."""
        try:
            decision = UpdateDecision.from_response(raw)
        except DecodeFailure as exc:
            LOGGER.warning("Undecodable update decision for %s, appending to %s: %s", name, self.fallback_file, exc)
            return self.append_fallback(new_content, detail=f"decode failure: {exc}")
        return self.apply(name, decision, new_content)

    def append_fallback(self, new_content: str, detail: str | None = None) -> UpdateResult:
        if not new_content.strip():
            return UpdateResult(status=UpdateStatus.NO_UPDATE_NEEDED, target=self.fallback_file, detail=detail)
        try:
            path = self.memory.append(self.fallback_file, new_content.strip("\n"), reindex=False)
        except (IOFailure, ValueError) as exc:
            LOGGER.error("Fallback append to %s failed: %s", self.fallback_file, exc)
            return UpdateResult(status=UpdateStatus.FAILED, target=self.fallback_file, detail=str(exc))
        pending = self.memory.reindex(path)
        if pending:
            detail = f"{detail}; {pending}" if detail else pending
        return UpdateResult(status=UpdateStatus.APPLIED, target=self.fallback_file, path=path, applied=1, detail=detail)

    def _replace_whole_file(self, name: str, decision: UpdateDecision, new_content: str) -> UpdateResult:
        body = decision.file_content if decision.file_content.strip() else new_content
        if not body.strip():
            return UpdateResult(status=UpdateStatus.FAILED, target=name, detail="refusing to write an empty file")
        if not body.endswith("\n"):
            body += "\n"
        path = self.memory.write(name, body, reindex=False)
        LOGGER.info("Replaced memory file %s", name, extra={"ctx_reason": decision.reason})
        return UpdateResult(
            status=UpdateStatus.APPLIED, target=name, path=path, applied=1, detail=self.memory.reindex(path)
        )

    def _patch_lines(self, name: str, decision: UpdateDecision) -> UpdateResult:
        patch = apply_line_directives(self.memory.read_lines(name), decision.line_updates)
        if patch.applied == 0:
            return UpdateResult(
                status=UpdateStatus.FAILED,
                target=name,
                skipped=list(patch.skipped),
                detail="no applicable line directives",
            )
        path = self.memory.write(name, join_lines(patch.lines), reindex=False)
        LOGGER.info(
            "Patched memory file %s",
            name,
            extra={"ctx_applied": patch.applied, "ctx_skipped": len(patch.skipped)},
        )
        return UpdateResult(
            status=UpdateStatus.APPLIED,
            target=name,
            path=path,
            applied=patch.applied,
            skipped=list(patch.skipped),
            detail=self.memory.reindex(path),
        )


__all__ = [
    "LineOperation",
    "LineDirective",
    "PatchResult",
    "UpdateStatus",
    "UpdateResult",
    "MemoryUpdater",
    "apply_line_directives",
    "parse_directive",
]
