"""Cheap change detection for indexed files."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from memory_engine.core.errors import IOFailure
from memory_engine.ingest.types import FileMetadata, FileState
from memory_engine.utils.hashing import md5_file

if TYPE_CHECKING:
    from memory_engine.db.store import ChunkStore


class ChangeDetector:
    """Decide whether a file must be re-chunked.

    Size and modification time are compared first; the file is only hashed
    when there is no stored row or either of those differs. A file whose bytes
    hash the same as before is reported unchanged.
    """

    def __init__(self, store: "ChunkStore") -> None:
        self.store = store

    def inspect(self, path: Path) -> FileState:
        try:
            stat = path.stat()
        except OSError as exc:
            raise IOFailure(f"cannot stat {path}: {exc}") from exc
        size = stat.st_size
        mtime = stat.st_mtime_ns // 1_000_000
        stored = self.store.get_metadata(str(path))

        if stored is not None and stored.size_bytes == size and stored.last_modified == mtime:
            return FileState(path, size, mtime, stored.content_hash, changed=False, reason="unchanged")

        try:
            digest = md5_file(path)
        except OSError as exc:
            raise IOFailure(f"cannot read {path}: {exc}") from exc

        if stored is None:
            return FileState(path, size, mtime, digest, changed=True, reason="new")
        if stored.content_hash == digest:
            return FileState(path, size, mtime, digest, changed=False, reason="touched")
        return FileState(path, size, mtime, digest, changed=True, reason="modified")

    def needs_reindex(self, path: Path) -> bool:
        return self.inspect(path).changed

    def record(self, state: FileState) -> None:
        """Persist the fingerprint so the next inspection short-circuits."""
        self.store.upsert_metadata(
            FileMetadata(
                file_path=str(state.path),
                size_bytes=state.size_bytes,
                last_modified=state.last_modified,
                content_hash=state.content_hash,
            )
        )


__all__ = ["ChangeDetector"]
