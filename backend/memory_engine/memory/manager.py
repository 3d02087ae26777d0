"""Conversation-to-memory pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

from memory_engine.core.logging import get_logger
from memory_engine.ingest.indexer import FileIndexer
from memory_engine.memory.analysis import MemoryAnalyzer
from memory_engine.memory.daily_log import DailyLog
from memory_engine.memory.history import ConversationBuffer, HistoryCompressor, Turn
from memory_engine.memory.long_term import LongTermMemory
from memory_engine.memory.update import MemoryUpdater, UpdateResult
from memory_engine.models.decisions import MemoryAnalysis

logger = get_logger(__name__)

# Turns this short ("ok", "thanks") are never worth analysing.
MIN_TURN_CHARS = 6


@dataclass(slots=True)
class ExchangeOutcome:
    log_path: Path | None
    analysis: MemoryAnalysis | None = None
    update: UpdateResult | None = None
    compressed: bool = False
    error: str | None = None


class MemoryManager:
    """Log a session's turns, then fold anything memorable into long-term files."""

    def __init__(
        self,
        memory: LongTermMemory,
        daily_log: DailyLog,
        analyzer: MemoryAnalyzer,
        updater: MemoryUpdater,
        indexer: FileIndexer,
        compressor: HistoryCompressor | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.memory = memory
        self.daily_log = daily_log
        self.analyzer = analyzer
        self.updater = updater
        self.indexer = indexer
        self.compressor = compressor
        self.clock = clock
        self._last_log: Path | None = None
        self.buffer = ConversationBuffer(on_append=self._persist_turn)

    def _persist_turn(self, turn: Turn) -> None:
        self._last_log = self.daily_log.append(turn.role, turn.content)

    def add_turn(self, role: str, content: str) -> bool:
        """Append one turn to the session; returns whether history was compressed."""
        self.buffer.append(role, content)
        if self.compressor is None:
            return False
        return self.compressor.maybe_compress(self.buffer)

    def record_exchange(self, turns: Iterable[Turn | tuple[str, str]]) -> ExchangeOutcome:
        """Persist an exchange and apply whatever memory update it warrants."""
        normalized = [turn if isinstance(turn, Turn) else Turn(*turn) for turn in turns]
        compressed = False
        for turn in normalized:
            compressed = self.add_turn(turn.role, turn.content) or compressed
        outcome = ExchangeOutcome(log_path=self._last_log, compressed=compressed)
        if self._last_log is not None:
            self.indexer.submit(self._last_log)

        combined = "\n\n".join(
            turn.render() for turn in normalized if len(turn.content.strip()) >= MIN_TURN_CHARS
        )
        if not combined:
            logger.debug("Nothing to analyse in exchange of %s turns", len(normalized))
            return outcome

        try:
            outcome.analysis = self.analyzer.analyze_memory(combined)
            outcome.update = self._apply_analysis(outcome.analysis)
        except Exception as exc:  # collaborator failures of any kind
            logger.exception("Memory update for exchange failed: %s", exc)
            outcome.error = str(exc)
        return outcome

    def _apply_analysis(self, analysis: MemoryAnalysis) -> UpdateResult | None:
        extracted = analysis.extracted_content.strip()
        if not analysis.should_update or not extracted:
            logger.debug("Exchange not memorable: %s", analysis.reason)
            return None
        entry = f"- {self.clock().strftime('%Y-%m-%d %H:%M')}: {extracted}"
        existing = self.memory.read(analysis.target_file)
        raw = self.analyzer.request_update(analysis.target_file, entry, existing)
        result = self.updater.apply_response(analysis.target_file, raw, entry)
        logger.info(
            "Memory update for %s: %s",
            result.target,
            result.status.value,
            extra={"ctx_detail": result.detail},
        )
        return result


__all__ = ["MemoryManager", "ExchangeOutcome", "MIN_TURN_CHARS"]
