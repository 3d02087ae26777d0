"""Composition root wiring every memory-engine component."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from memory_engine.core.config import Settings, get_settings
from memory_engine.core.logging import get_logger
from memory_engine.db.sqlite import SQLiteDatabase
from memory_engine.db.store import ChunkStore
from memory_engine.ingest.indexer import FileIndexer
from memory_engine.ingest.types import EventKind, FileEvent, IndexStats
from memory_engine.ingest.watcher import Watcher
from memory_engine.memory.analysis import LanguageModel, MemoryAnalyzer
from memory_engine.memory.compaction import MemoryCompactor
from memory_engine.memory.daily_log import DailyLog
from memory_engine.memory.history import HistoryCompressor
from memory_engine.memory.long_term import LongTermMemory
from memory_engine.memory.manager import MemoryManager
from memory_engine.memory.update import MemoryUpdater
from memory_engine.retrieval import HybridSearch, QueryCache, SearchResult

logger = get_logger(__name__)


class MemoryEngine:
    """Owns the store, indexer, watcher and memory services for one memory directory.

    Components that talk to a language model (analysis, history compression,
    compaction) are only built when ``llm`` is given.
    """

    def __init__(self, settings: Settings, llm: LanguageModel | None = None) -> None:
        self.settings = settings
        self.memory_dir: Path = settings.memory_dir
        self.memory_dir.mkdir(parents=True, exist_ok=True)

        self.db = SQLiteDatabase(settings.database_path, pool_size=settings.pool_size, timeout=settings.pool_timeout)
        self.cache: QueryCache = QueryCache(settings.cache_capacity)
        self.store = ChunkStore(self.db, self.cache, batch_size=settings.batch_size)
        self.indexer = FileIndexer(
            self.store,
            self.memory_dir,
            max_chars=settings.chunk_max_chars,
            overlap_lines=settings.chunk_overlap_lines,
            workers=settings.index_workers,
            include=settings.watch_include,
        )
        self.watcher = Watcher(self.memory_dir, self.indexer.submit, include=[settings.watch_include])
        self.daily_log = DailyLog(self.memory_dir)
        self.long_term = LongTermMemory(self.memory_dir, on_write=self.indexer.submit)
        self.updater = MemoryUpdater(self.long_term, fallback_file=settings.fallback_memory_file)
        self.search_service = HybridSearch(
            self.store,
            self.daily_log,
            chunk_weight=settings.chunk_weight,
            log_weight=settings.log_weight,
            default_max_results=settings.default_max_results,
            default_min_score=settings.default_min_score,
        )

        self.llm = llm
        self.analyzer: MemoryAnalyzer | None = None
        self.compressor: HistoryCompressor | None = None
        self.manager: MemoryManager | None = None
        self.compactor: MemoryCompactor | None = None
        if llm is not None:
            self.analyzer = MemoryAnalyzer(llm)
            self.compressor = HistoryCompressor(
                llm,
                threshold=settings.history_token_threshold,
                trigger_ratio=settings.history_trigger_ratio,
                window=settings.history_window,
            )
            self.manager = MemoryManager(
                self.long_term,
                self.daily_log,
                self.analyzer,
                self.updater,
                self.indexer,
                compressor=self.compressor,
            )
            self.compactor = MemoryCompactor(
                self.long_term,
                self.analyzer,
                settings.archive_dir,
                threshold=settings.compaction_threshold,
            )
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None, llm: LanguageModel | None = None) -> "MemoryEngine":
        return cls(settings or get_settings(), llm=llm)

    # -------------------------------------------------------------- lifecycle
    def start(self, watch: bool = True) -> None:
        self.indexer.start()
        if watch:
            self.watcher.start()

    def close(self, timeout: float = 30.0) -> None:
        """Stop the watcher, drain and join index workers, then close the pool."""
        if self._closed:
            return
        self._closed = True
        self.watcher.stop()
        if not self.indexer.stop(timeout=timeout):
            logger.warning("Index workers did not drain before shutdown")
        self.db.close()
        logger.info("Memory engine closed", extra={"ctx_memory_dir": str(self.memory_dir)})

    def __enter__(self) -> "MemoryEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------- operations
    def initialize(self) -> IndexStats:
        """Create default memory files and index everything under the memory directory."""
        self.long_term.ensure_defaults()
        return self.indexer.index_all()

    def search(self, query: str, max_results: int | None = None, min_score: float | None = None) -> list[SearchResult]:
        return self.search_service.search(query, max_results=max_results, min_score=min_score)

    def archive_logs(self, days_to_keep: int) -> list[tuple[Path, Path]]:
        moved = self.daily_log.archive(days_to_keep)
        for source, target in moved:
            self.indexer.submit(FileEvent(kind=EventKind.DELETED, path=source))
            self.indexer.submit(FileEvent(kind=EventKind.CREATED, path=target))
        return moved

    def statistics(self) -> dict[str, Any]:
        stats = self.store.statistics()
        stats["memory_dir"] = str(self.memory_dir)
        stats["pending_events"] = self.indexer.pending
        return stats


__all__ = ["MemoryEngine"]
