"""Conversation buffer and its token-budget compression."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable

from memory_engine.core.logging import get_logger
from memory_engine.memory.analysis import LanguageModel, MemoryAnalyzer

LOGGER = get_logger(__name__)

SUMMARY_PREFIX = "[Compressed summary]: "
SUMMARY_UNAVAILABLE = "[summary unavailable]"


@dataclass(frozen=True, slots=True)
class Turn:
    role: str
    content: str

    def render(self) -> str:
        return f"{self.role}: {self.content}"


class ConversationBuffer:
    """Ordered turns of one session.

    ``on_append`` is called with every new turn; the engine uses it to persist
    turns to the daily log.
    """

    def __init__(self, on_append: Callable[[Turn], None] | None = None) -> None:
        self._turns: list[Turn] = []
        self._lock = threading.Lock()
        self.on_append = on_append

    def append(self, role: str, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        with self._lock:
            self._turns.append(turn)
        if self.on_append is not None:
            self.on_append(turn)
        return turn

    def turns(self) -> tuple[Turn, ...]:
        with self._lock:
            return tuple(self._turns)

    def messages(self) -> list[dict[str, str]]:
        return [{"role": turn.role, "content": turn.content} for turn in self.turns()]

    def replace_prefix(self, count: int, replacement: Turn) -> None:
        """Swap the oldest ``count`` turns for a single turn."""
        with self._lock:
            self._turns[:count] = [replacement]

    def clear(self) -> None:
        with self._lock:
            self._turns.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)


class HistoryCompressor:
    """Folds the oldest turns into a summary once the buffer nears its budget."""

    def __init__(
        self,
        llm: LanguageModel,
        threshold: int = 184_000,
        trigger_ratio: float = 0.8,
        window: int = 40,
    ) -> None:
        self.llm = llm
        self.analyzer = MemoryAnalyzer(llm)
        self.threshold = threshold
        self.trigger_ratio = trigger_ratio
        self.window = window

    @property
    def trigger_tokens(self) -> float:
        return self.threshold * self.trigger_ratio

    def estimate_tokens(self, buffer: ConversationBuffer) -> int:
        turns = buffer.turns()
        text = "".join(f"{turn.render()}\n" for turn in turns)
        try:
            return int(self.llm.count_tokens(text))
        except Exception as exc:  # collaborator errors of any kind
            LOGGER.warning("Token count failed, estimating from characters: %s", exc)
            return sum(len(turn.content) for turn in turns) * 4

    def should_compress(self, buffer: ConversationBuffer) -> bool:
        return self.estimate_tokens(buffer) > self.trigger_tokens

    def maybe_compress(self, buffer: ConversationBuffer) -> bool:
        """Compress once if over budget and longer than the window; report whether it did."""
        if not self.should_compress(buffer):
            return False
        turns = buffer.turns()
        if len(turns) <= self.window:
            LOGGER.debug("History over budget but only %s turns, not compressing", len(turns))
            return False
        oldest = turns[: self.window]
        try:
            summary = self.analyzer.summarize([(turn.role, turn.content) for turn in oldest])
        except Exception as exc:  # collaborator errors of any kind
            LOGGER.warning("History summary failed: %s", exc)
            summary = ""
        buffer.replace_prefix(len(oldest), Turn(role="system", content=SUMMARY_PREFIX + (summary or SUMMARY_UNAVAILABLE)))
        LOGGER.info("Compressed %s turns into a summary", len(oldest), extra={"ctx_remaining": len(buffer)})
        return True


__all__ = ["Turn", "ConversationBuffer", "HistoryCompressor", "SUMMARY_PREFIX", "SUMMARY_UNAVAILABLE"]
