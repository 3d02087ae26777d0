"""Shrink oversized long-term memory files, keeping the originals restorable."""

from __future__ import annotations

import shutil
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

import orjson

from memory_engine.core.errors import IOFailure
from memory_engine.core.logging import get_logger
from memory_engine.memory.analysis import MemoryAnalyzer
from memory_engine.memory.long_term import DEFAULT_FILES, LongTermMemory
from memory_engine.utils.time import timestamp_slug

LOGGER = get_logger(__name__)

INDEX_FILE_NAME = "memory_index.json"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(slots=True)
class CompressionRecord:
    file_name: str
    original_path: str
    compressed_at: str
    original_length: int
    compressed_length: int
    ratio: str

    @classmethod
    def from_dict(cls, payload: dict) -> "CompressionRecord":
        return cls(
            file_name=str(payload["file_name"]),
            original_path=str(payload["original_path"]),
            compressed_at=str(payload.get("compressed_at", "")),
            original_length=int(payload.get("original_length", 0)),
            compressed_length=int(payload.get("compressed_length", 0)),
            ratio=str(payload.get("ratio", "")),
        )


class MemoryCompactor:
    """Compress long-term files that exceed ``threshold`` characters.

    Before a file is rewritten its current text is copied to
    ``archive/<stem>_<timestamp>_original.md`` and the copy is recorded in
    ``memory_index.json`` so ``restore`` can bring it back.
    """

    def __init__(
        self,
        memory: LongTermMemory,
        analyzer: MemoryAnalyzer,
        archive_dir: Path,
        threshold: int = 8000,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.memory = memory
        self.analyzer = analyzer
        self.archive_dir = archive_dir
        self.threshold = threshold
        self.clock = clock
        self.index_path = memory.memory_dir / INDEX_FILE_NAME
        self._lock = threading.Lock()

    def needs_compaction(self, name: str) -> bool:
        return len(self.memory.read(name)) > self.threshold

    def compact(self, name: str, force: bool = False) -> CompressionRecord | None:
        original = self.memory.read(name)
        if not original.strip() or (not force and len(original) <= self.threshold):
            return None

        moment = self.clock()
        compressed = self.analyzer.compress_document(name, original)
        if not compressed.strip():
            LOGGER.warning("Compression of %s returned nothing, keeping the original", name)
            return None
        if not compressed.endswith("\n"):
            compressed += "\n"
        archive_path = self._archive_copy(name, moment, "original")
        self.memory.write(name, compressed)

        ratio = (1.0 - len(compressed) / len(original)) * 100
        record = CompressionRecord(
            file_name=name,
            original_path=str(archive_path),
            compressed_at=moment.strftime(_DATE_FORMAT),
            original_length=len(original),
            compressed_length=len(compressed),
            ratio=f"{ratio:.1f}%",
        )
        self._append_record(record)
        LOGGER.info(
            "Compressed memory file %s",
            name,
            extra={"ctx_original": record.original_length, "ctx_compressed": record.compressed_length},
        )
        return record

    def compact_all(self) -> list[CompressionRecord]:
        records = []
        for name in DEFAULT_FILES:
            record = self.compact(name)
            if record is not None:
                records.append(record)
        return records

    def history(self, name: str | None = None) -> list[CompressionRecord]:
        records = [CompressionRecord.from_dict(item) for item in self._load_index()["compressions"]]
        if name:
            records = [record for record in records if record.file_name == name]
        return records

    def latest(self, name: str) -> CompressionRecord | None:
        records = self.history(name)
        if not records:
            return None
        return sorted(records, key=lambda record: record.compressed_at)[-1]

    def restore(self, name: str) -> Path | None:
        """Put back the most recent archived original; the current text is backed up first."""
        record = self.latest(name)
        if record is None:
            LOGGER.warning("No archived version of %s", name)
            return None
        source = Path(record.original_path)
        if not source.exists():
            LOGGER.warning("Archived file %s is missing", source)
            return None
        if self.memory.exists(name):
            self._archive_copy(name, self.clock(), "backup")
        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise IOFailure(f"cannot read {source}: {exc}") from exc
        path = self.memory.write(name, text)
        LOGGER.info("Restored %s from %s", name, source)
        return path

    def _archive_copy(self, name: str, moment: datetime, label: str) -> Path:
        stem = name[: -len(".md")] if name.endswith(".md") else name
        target = self.archive_dir / f"{stem}_{timestamp_slug(moment)}_{label}.md"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(self.memory.path(name), target)
        except OSError as exc:
            raise IOFailure(f"cannot archive {name}: {exc}") from exc
        return target

    def _load_index(self) -> dict:
        with self._lock:
            if not self.index_path.exists():
                return {"compressions": []}
            try:
                payload = orjson.loads(self.index_path.read_bytes())
            except (OSError, orjson.JSONDecodeError) as exc:
                raise IOFailure(f"cannot read {self.index_path}: {exc}") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("compressions"), list):
            return {"compressions": []}
        return payload

    def _append_record(self, record: CompressionRecord) -> None:
        payload = self._load_index()
        payload["compressions"].append(asdict(record))
        with self._lock:
            try:
                self.index_path.parent.mkdir(parents=True, exist_ok=True)
                self.index_path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
            except OSError as exc:
                raise IOFailure(f"cannot write {self.index_path}: {exc}") from exc


__all__ = ["MemoryCompactor", "CompressionRecord", "INDEX_FILE_NAME"]
