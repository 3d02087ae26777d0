"""Filesystem watcher that emits indexing events."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from memory_engine.core.logging import get_logger
from memory_engine.ingest.types import EventKind, FileEvent

LOGGER = get_logger(__name__)

FileEventCallback = Callable[[FileEvent], None]


class MemoryEventHandler(PatternMatchingEventHandler):
    """Translate watchdog events into ``FileEvent`` values.

    A move is reported as a deletion of the old path and a creation of the
    new one, so renamed notes are re-indexed under their new name.
    """

    def __init__(self, callback: FileEventCallback, include: list[str]) -> None:
        super().__init__(
            patterns=include or ["*"],
            ignore_directories=True,
            case_sensitive=False,
        )
        self.callback = callback

    def _emit(self, kind: EventKind, raw_path: str | bytes) -> None:
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        self.callback(FileEvent(kind=kind, path=path))

    def on_created(self, event: FileSystemEvent) -> None:
        self._emit(EventKind.CREATED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._emit(EventKind.MODIFIED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._emit(EventKind.DELETED, event.src_path)
        self._emit(EventKind.CREATED, event.dest_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._emit(EventKind.DELETED, event.src_path)


class Watcher:
    """Recursive watchdog observer over the memory directory."""

    def __init__(self, root: Path, callback: FileEventCallback, include: list[str] | None = None) -> None:
        self.root = root.expanduser().resolve()
        self.handler = MemoryEventHandler(callback, include or ["*.md"])
        self._observer: BaseObserver | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        with self._lock:
            if self._observer is not None:
                return
            self.root.mkdir(parents=True, exist_ok=True)
            observer = Observer()
            observer.schedule(self.handler, str(self.root), recursive=True)
            observer.start()
            self._observer = observer
        LOGGER.info("Watching memory directory", extra={"ctx_root": str(self.root)})

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=timeout)


__all__ = ["Watcher", "MemoryEventHandler", "FileEventCallback"]
