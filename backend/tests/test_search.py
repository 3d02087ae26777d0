"""Tests for hybrid search over chunks and daily logs."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from memory_engine.core.errors import IOFailure
from memory_engine.db.store import ChunkStore
from memory_engine.ingest.types import Chunk
from memory_engine.memory.daily_log import DailyLog
from memory_engine.retrieval import HybridSearch, ResultType


@pytest.fixture()
def daily_log(memory_dir: Path) -> DailyLog:
    return DailyLog(memory_dir, clock=lambda: datetime(2024, 5, 1, 9, 30, 0))


@pytest.fixture()
def search(store: ChunkStore, daily_log: DailyLog) -> HybridSearch:
    return HybridSearch(store, daily_log)


def _chunk(path: str, text: str, start: int = 1) -> Chunk:
    return Chunk(file_path=path, start_line=start, end_line=start, content=text, token_count=len(text) // 4)


def test_chunk_hits_rank_above_log_hits(search: HybridSearch, store: ChunkStore, daily_log: DailyLog) -> None:
    store.insert_chunk(_chunk("/mem/MEMORY.md", "Pay the invoice by Friday"))
    daily_log.append("user", "remind me about the Invoice")

    results = search.search("invoice")

    assert [result.result_type for result in results] == [ResultType.CHUNK, ResultType.LOG_FILE]
    assert results[0].score == pytest.approx(0.8)
    assert results[0].start_line == 1
    assert results[1].score == pytest.approx(0.6)
    assert results[1].start_line is None
    assert results[1].content == "remind me about the Invoice"
    assert results[1].file_path.endswith("2024-05-01.md")


def test_min_score_filters_log_only_matches(search: HybridSearch, daily_log: DailyLog) -> None:
    daily_log.append("user", "the invoice arrived")
    assert search.search("invoice", max_results=5, min_score=0.7) == []


def test_results_are_truncated_to_max_results(search: HybridSearch, store: ChunkStore) -> None:
    store.batch_insert_chunks([_chunk(f"/mem/n{index}.md", f"invoice number {index}") for index in range(8)])

    results = search.search("invoice", max_results=3)

    assert len(results) == 3
    assert all(result.result_type is ResultType.CHUNK for result in results)


def test_blank_query_and_zero_limit_return_nothing(search: HybridSearch, store: ChunkStore) -> None:
    store.insert_chunk(_chunk("/mem/a.md", "anything"))
    assert search.search("   ") == []
    assert search.search("anything", max_results=0) == []


def test_configured_weights_are_used(store: ChunkStore, daily_log: DailyLog) -> None:
    service = HybridSearch(store, daily_log, chunk_weight=0.5, log_weight=0.9)
    store.insert_chunk(_chunk("/mem/a.md", "budget review"))
    daily_log.append("assistant", "budget approved")

    results = service.search("budget")

    assert [result.result_type for result in results] == [ResultType.LOG_FILE, ResultType.CHUNK]


def test_to_dict_shape(search: HybridSearch, store: ChunkStore) -> None:
    store.insert_chunk(_chunk("/mem/a.md", "dentist appointment", start=4))
    payload = search.search("dentist")[0].to_dict()
    assert payload == {
        "file_path": "/mem/a.md",
        "start_line": 4,
        "end_line": 4,
        "content": "dentist appointment",
        "score": 0.8,
        "result_type": "chunk",
    }


def test_read_range_returns_inclusive_lines(search: HybridSearch, memory_dir: Path, sample_notes: str) -> None:
    note = memory_dir / "notes.md"
    note.write_text(sample_notes, encoding="utf-8")

    assert search.read_range(str(note), 2, 3) == (
        "line 2 about the quarterly invoice review\nline 3 about the quarterly invoice review\n"
    )
    assert search.read_range(str(note), 39).count("\n") == 2
    assert search.read_range(str(note), 50, 60) == ""


def test_read_range_of_missing_file_raises(search: HybridSearch, memory_dir: Path) -> None:
    with pytest.raises(IOFailure):
        search.read_range(str(memory_dir / "missing.md"), 1, 2)
