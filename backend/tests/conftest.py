"""Test fixtures for the memory engine."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Iterator

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Point configuration at the test directory and drop cached settings."""
    monkeypatch.setenv("MEMX_MEMORY_DIR", str(tmp_path / "memory"))
    monkeypatch.delenv("MEMX_CONFIG", raising=False)
    monkeypatch.delenv("MEMX_DB_PATH", raising=False)

    from memory_engine.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeLLM:
    """Scripted stand-in for the language model.

    ``responses`` are returned in order (an Exception instance is raised
    instead); once exhausted ``default`` is returned. Token counts use
    ``counter`` when set, otherwise the call fails.
    """

    def __init__(
        self,
        responses: list[str | Exception] | None = None,
        default: str = "{}",
        counter: Callable[[str], int] | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.default = default
        self.counter = counter
        self.prompts: list[tuple[str, str | None]] = []

    def complete(self, prompt: str, response_format: str | None = None) -> str:
        self.prompts.append((prompt, response_format))
        if self.responses:
            item = self.responses.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return self.default

    def count_tokens(self, text: str) -> int:
        if self.counter is None:
            raise RuntimeError("token counting unavailable")
        return self.counter(text)


@pytest.fixture()
def memory_dir(tmp_path: Path) -> Path:
    path = (tmp_path / "memory").resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture()
def settings(memory_dir: Path):
    from memory_engine.core.config import Settings

    return Settings(memory_dir=memory_dir, pool_timeout=1.0)


@pytest.fixture()
def database(tmp_path: Path):
    from memory_engine.db.sqlite import SQLiteDatabase

    db = SQLiteDatabase(tmp_path / "index.db", pool_size=2, timeout=1.0)
    yield db
    db.close()


@pytest.fixture()
def store(database):
    from memory_engine.db.store import ChunkStore
    from memory_engine.retrieval.cache import QueryCache

    return ChunkStore(database, QueryCache(capacity=8), batch_size=1000)


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def engine(settings, fake_llm):
    from memory_engine.engine import MemoryEngine

    instance = MemoryEngine(settings, llm=fake_llm)
    yield instance
    instance.close()


@pytest.fixture(scope="session")
def sample_notes() -> str:
    return "".join(f"line {index} about the quarterly invoice review\n" for index in range(1, 41))
