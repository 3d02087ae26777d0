"""Common indexing data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Chunk:
    """A line-bounded slice of a source file.

    ``start_line``/``end_line`` are 1-based and inclusive. ``id`` and
    ``created_at`` are only populated on chunks read back from the store.
    """

    file_path: str
    start_line: int
    end_line: int
    content: str
    token_count: int
    id: int | None = None
    created_at: int | None = None


@dataclass(frozen=True, slots=True)
class FileMetadata:
    """Stored fingerprint of an indexed file."""

    file_path: str
    size_bytes: int
    last_modified: int
    content_hash: str | None


@dataclass(frozen=True, slots=True)
class FileState:
    """Outcome of comparing a file on disk against its stored fingerprint."""

    path: Path
    size_bytes: int
    last_modified: int
    content_hash: str | None
    changed: bool
    reason: str


class EventKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class FileEvent:
    kind: EventKind
    path: Path


@dataclass(slots=True)
class IndexStats:
    """Aggregated indexing statistics."""

    indexed: int = 0
    skipped: int = 0
    deleted: int = 0
    failed: int = 0
    chunks: int = 0

    def record(self, result: "IndexResult") -> None:
        if result.status == "indexed":
            self.indexed += 1
            self.chunks += result.chunks
        elif result.status == "skipped":
            self.skipped += 1
        elif result.status == "deleted":
            self.deleted += 1
        elif result.status == "error":
            self.failed += 1

    def to_dict(self) -> dict[str, int]:
        return {
            "indexed": self.indexed,
            "skipped": self.skipped,
            "deleted": self.deleted,
            "failed": self.failed,
            "chunks": self.chunks,
        }


@dataclass(slots=True)
class IndexResult:
    """Outcome for a single processed path."""

    path: Path
    status: str
    chunks: int = 0
    detail: str | None = None


__all__ = [
    "Chunk",
    "FileMetadata",
    "FileState",
    "EventKind",
    "FileEvent",
    "IndexStats",
    "IndexResult",
]
