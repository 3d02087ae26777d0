"""Index orchestration: change detection, chunking and persistence."""

from __future__ import annotations

import fnmatch
import queue
import threading
import time
import weakref
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path

from memory_engine.core.errors import IOFailure, MemoryEngineError, ResourceTimeout, StoreFailure
from memory_engine.core.logging import get_logger
from memory_engine.core.metrics import INDEX_DURATION
from memory_engine.db.store import ChunkStore
from memory_engine.ingest.chunker import DEFAULT_MAX_CHARS, DEFAULT_OVERLAP_LINES, chunk_lines
from memory_engine.ingest.fingerprint import ChangeDetector
from memory_engine.ingest.types import EventKind, FileEvent, IndexResult, IndexStats

logger = get_logger(__name__)


class FileIndexer:
    """Keep the chunk index in step with markdown files on disk.

    Events are queued and drained by ``workers`` threads once ``start`` has
    been called; before that, submitted events are handled inline. Work on a
    single path is serialized so one file is never chunked by two threads.
    """

    def __init__(
        self,
        store: ChunkStore,
        root: Path,
        max_chars: int = DEFAULT_MAX_CHARS,
        overlap_lines: int = DEFAULT_OVERLAP_LINES,
        workers: int = 4,
        include: str = "*.md",
    ) -> None:
        self.store = store
        self.root = _normalize(root)
        self.max_chars = max_chars
        self.overlap_lines = overlap_lines
        self.workers = workers
        self.include = include
        self.detector = ChangeDetector(store)
        self._queue: "queue.Queue[FileEvent | None]" = queue.Queue()
        self._abort = threading.Event()
        self._executor: ThreadPoolExecutor | None = None
        self._futures: list[Future] = []
        self._state_lock = threading.Lock()
        # Entries vanish once no caller holds the lock.
        self._path_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._path_locks_guard = threading.Lock()

    # ---------------------------------------------------------------- single file
    def matches(self, path: Path) -> bool:
        return fnmatch.fnmatch(path.name.lower(), self.include.lower())

    def index_file(self, path: Path) -> IndexResult:
        path = _normalize(path)
        started = time.perf_counter()
        with self._lock_for(path):
            result = self._index_locked(path)
        INDEX_DURATION.labels(status=result.status).observe(time.perf_counter() - started)
        return result

    def remove_file(self, path: Path) -> IndexResult:
        path = _normalize(path)
        with self._lock_for(path):
            return self._remove_locked(path)

    def _index_locked(self, path: Path) -> IndexResult:
        if not path.exists():
            return self._remove_locked(path)
        if not path.is_file() or not self.matches(path):
            return IndexResult(path=path, status="skipped", detail="excluded")

        try:
            state = self.detector.inspect(path)
        except IOFailure as exc:
            logger.warning("Skipping unreadable file %s: %s", path, exc)
            return IndexResult(path=path, status="error", detail=str(exc))

        if not state.changed:
            if state.reason == "touched":
                self.detector.record(state)
            logger.debug("Skipping unchanged file %s", path)
            return IndexResult(path=path, status="skipped", detail=state.reason)

        # Fingerprint goes in first; it is withdrawn again if chunking fails.
        self.detector.record(state)
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.store.forget_metadata(str(path))
            logger.warning("Skipping unreadable file %s: %s", path, exc)
            return IndexResult(path=path, status="error", detail=str(exc))

        chunks = chunk_lines(content, str(path), max_chars=self.max_chars, overlap_lines=self.overlap_lines)
        try:
            stored = self.store.replace_file_chunks(str(path), chunks)
        except ResourceTimeout:
            self.store.forget_metadata(str(path))
            raise
        except StoreFailure as exc:
            self.store.forget_metadata(str(path))
            logger.error(
                "Failed to store chunks for %s",
                path,
                extra={"ctx_committed": exc.committed, "ctx_error": str(exc)},
            )
            return IndexResult(path=path, status="error", detail=str(exc))

        logger.info(
            "Indexed %s",
            path,
            extra={"ctx_chunks": stored, "ctx_reason": state.reason},
        )
        return IndexResult(path=path, status="indexed", chunks=stored)

    def _remove_locked(self, path: Path) -> IndexResult:
        removed = self.store.delete_by_file(str(path))
        if removed:
            logger.info("Removed %s chunks for deleted file %s", removed, path)
        return IndexResult(path=path, status="deleted", chunks=removed)

    def _lock_for(self, path: Path) -> threading.Lock:
        key = str(path)
        with self._path_locks_guard:
            lock = self._path_locks.get(key)
            if lock is None:
                lock = self._path_locks[key] = threading.Lock()
            return lock

    # ------------------------------------------------------------------ batches
    def index_directory(self, directory: Path | None = None) -> IndexStats:
        """Index every matching file below ``directory`` and drop vanished ones."""
        base = _normalize(directory) if directory is not None else self.root
        stats = IndexStats()
        if not base.exists():
            logger.warning("Index directory %s does not exist", base)
            return stats

        seen: set[str] = set()
        for file_path in sorted(base.rglob(self.include)):
            if not file_path.is_file():
                continue
            seen.add(str(file_path))
            stats.record(self.index_file(file_path))

        prefix = f"{base}/"
        for stored_path in self.store.indexed_files():
            if stored_path.startswith(prefix) and stored_path not in seen and not Path(stored_path).exists():
                stats.record(self.remove_file(Path(stored_path)))

        logger.info("Indexed directory %s", base, extra={"ctx_stats": stats.to_dict()})
        return stats

    def index_all(self) -> IndexStats:
        """Index the memory root, including its ``archive/`` tree."""
        return self.index_directory(self.root)

    def handle_event(self, event: FileEvent) -> IndexResult:
        if event.kind is EventKind.DELETED:
            return self.remove_file(event.path)
        return self.index_file(event.path)

    # ------------------------------------------------------------------ workers
    @property
    def running(self) -> bool:
        return self._executor is not None

    @property
    def pending(self) -> int:
        return self._queue.unfinished_tasks

    def submit(self, event: FileEvent | Path) -> None:
        """Queue a change for the workers, or handle it now when not started."""
        if isinstance(event, Path):
            event = FileEvent(kind=EventKind.MODIFIED, path=event)
        with self._state_lock:
            if self._executor is not None:
                self._queue.put(event)
                return
        self.handle_event(event)

    def start(self) -> None:
        with self._state_lock:
            if self._executor is not None:
                return
            self._abort.clear()
            self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="memx-index")
            self._futures = [self._executor.submit(self._worker) for _ in range(self.workers)]
        logger.info("Started %s index workers", self.workers)

    def stop(self, timeout: float = 30.0) -> bool:
        """Drain queued events, then join the workers.

        Returns ``False`` when the queue could not be drained within
        ``timeout``; remaining events are then discarded and only in-flight
        files are allowed to finish.
        """
        with self._state_lock:
            executor, self._executor = self._executor, None
            futures, self._futures = self._futures, []
        if executor is None:
            return True
        for _ in futures:
            self._queue.put(None)
        _, not_done = wait(futures, timeout=timeout)
        drained = not not_done
        if not drained:
            logger.warning("Index queue not drained within %.1fs, discarding pending events", timeout)
            self._abort.set()
        executor.shutdown(wait=True)
        return drained

    def _worker(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is None:
                    return
                if self._abort.is_set():
                    continue
                self.handle_event(event)
            except MemoryEngineError as exc:
                logger.error(
                    "Index worker failed on %s: %s",
                    event.path if event is not None else None,
                    exc,
                    extra={"ctx_error_code": exc.error_code},
                )
            finally:
                self._queue.task_done()


def _normalize(path: Path) -> Path:
    return path.expanduser().resolve()


__all__ = ["FileIndexer"]
