"""Bounded LRU cache for full-text query results."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Generic, Sequence, TypeVar

from memory_engine.core.metrics import CACHE_EVENTS

T = TypeVar("T")


class QueryCache(Generic[T]):
    """Least-recently-used map from query key to result rows.

    When an insert pushes the size past ``capacity`` the oldest entries are
    evicted until ``capacity // 2`` remain. Entries keep whatever breadth the
    first query stored; a later hit returns at most ``limit`` of those rows.
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: OrderedDict[str, tuple[T, ...]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str, limit: int | None = None) -> list[T] | None:
        with self._lock:
            rows = self._entries.get(key)
            if rows is None:
                self._misses += 1
                CACHE_EVENTS.labels(event="miss").inc()
                return None
            self._entries.move_to_end(key)
            self._hits += 1
        CACHE_EVENTS.labels(event="hit").inc()
        return list(rows if limit is None else rows[:limit])

    def put(self, key: str, rows: Sequence[T]) -> None:
        with self._lock:
            self._entries[key] = tuple(rows)
            self._entries.move_to_end(key)
            if len(self._entries) > self.capacity:
                self._evict_locked(len(self._entries) - self.capacity // 2)

    def evict(self, count: int) -> int:
        """Drop up to ``count`` least-recently-used entries."""
        with self._lock:
            return self._evict_locked(count)

    def _evict_locked(self, count: int) -> int:
        removed = 0
        while self._entries and removed < count:
            self._entries.popitem(last=False)
            removed += 1
        if removed:
            self._evictions += removed
            CACHE_EVENTS.labels(event="evict").inc(removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def keys(self) -> list[str]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }


__all__ = ["QueryCache"]
