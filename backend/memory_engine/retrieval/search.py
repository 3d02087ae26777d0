"""Hybrid keyword search across indexed chunks and daily logs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from memory_engine.core.errors import IOFailure
from memory_engine.core.logging import get_logger
from memory_engine.core.metrics import SEARCH_LATENCY
from memory_engine.memory.daily_log import DailyLog
from memory_engine.utils.text import join_lines, split_lines

if TYPE_CHECKING:
    from memory_engine.db.store import ChunkStore

logger = get_logger(__name__)


class ResultType(str, Enum):
    CHUNK = "chunk"
    LOG_FILE = "log_file"


@dataclass(frozen=True, slots=True)
class SearchResult:
    file_path: str
    content: str
    score: float
    result_type: ResultType
    start_line: int | None = None
    end_line: int | None = None
    chunk_id: int | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "content": self.content,
            "score": self.score,
            "result_type": self.result_type.value,
        }


class HybridSearch:
    """Merge full-text chunk hits with daily-log substring hits.

    Scores are fixed per source (``chunk_weight`` / ``log_weight``); there is
    no per-document relevance model. Equal scores keep their merge order.
    """

    def __init__(
        self,
        store: "ChunkStore",
        daily_log: DailyLog,
        chunk_weight: float = 0.8,
        log_weight: float = 0.6,
        default_max_results: int = 10,
        default_min_score: float = 0.1,
    ) -> None:
        self.store = store
        self.daily_log = daily_log
        self.chunk_weight = chunk_weight
        self.log_weight = log_weight
        self.default_max_results = default_max_results
        self.default_min_score = default_min_score

    def search(
        self,
        query: str,
        max_results: int | None = None,
        min_score: float | None = None,
    ) -> list[SearchResult]:
        limit = self.default_max_results if max_results is None else max_results
        threshold = self.default_min_score if min_score is None else min_score
        if limit < 1 or not query.strip():
            return []

        started = time.perf_counter()
        results: list[SearchResult] = [
            SearchResult(
                file_path=chunk.file_path,
                content=chunk.content,
                score=self.chunk_weight,
                result_type=ResultType.CHUNK,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                chunk_id=chunk.id,
            )
            for chunk in self.store.full_text_search(query, limit * 2)
        ]
        for path, lines in self.daily_log.search_lines(query):
            results.append(
                SearchResult(
                    file_path=str(path),
                    content="\n".join(lines),
                    score=self.log_weight,
                    result_type=ResultType.LOG_FILE,
                )
            )

        ranked = sorted(
            (result for result in results if result.score >= threshold),
            key=lambda result: result.score,
            reverse=True,
        )[:limit]
        SEARCH_LATENCY.observe(time.perf_counter() - started)
        logger.debug("Search %r returned %s of %s candidates", query, len(ranked), len(results))
        return ranked

    def read_range(self, file_path: str, start_line: int | None = None, end_line: int | None = None) -> str:
        """Current text of ``file_path`` between two 1-based inclusive lines."""
        path = Path(file_path)
        try:
            lines = split_lines(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise IOFailure(f"cannot read {path}: {exc}") from exc
        start = max(start_line or 1, 1)
        end = len(lines) if end_line is None else min(end_line, len(lines))
        return join_lines(lines[start - 1 : end])


__all__ = ["HybridSearch", "SearchResult", "ResultType"]
