"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "MEMX_"
DEFAULT_CONFIG_PATH = Path("~/.config/memory-engine/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("memory", "dir"): "memory_dir",
    ("memory", "fallback_file"): "fallback_memory_file",
    ("memory", "compaction_threshold"): "compaction_threshold",
    ("storage", "db_path"): "db_path",
    ("storage", "pool_size"): "pool_size",
    ("storage", "pool_timeout"): "pool_timeout",
    ("storage", "batch_size"): "batch_size",
    ("chunking", "max_chars"): "chunk_max_chars",
    ("chunking", "overlap_lines"): "chunk_overlap_lines",
    ("cache", "capacity"): "cache_capacity",
    ("watch", "include_glob"): "watch_include",
    ("watch", "workers"): "index_workers",
    ("search", "chunk_weight"): "chunk_weight",
    ("search", "log_weight"): "log_weight",
    ("search", "max_results"): "default_max_results",
    ("search", "min_score"): "default_min_score",
    ("history", "token_threshold"): "history_token_threshold",
    ("history", "trigger_ratio"): "history_trigger_ratio",
    ("history", "window"): "history_window",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    memory_dir: Path = Field(default=Path.home() / ".memory-engine")
    db_path: Path | None = None
    pool_size: int = Field(default=5, ge=1)
    pool_timeout: float = Field(default=30.0, gt=0)
    batch_size: int = Field(default=1000, ge=1)
    chunk_max_chars: int = Field(default=1600, ge=1)
    chunk_overlap_lines: int = Field(default=3, ge=0)
    cache_capacity: int = Field(default=100, ge=1)
    index_workers: int = Field(default=4, ge=1)
    watch_include: str = "*.md"
    chunk_weight: float = Field(default=0.8, ge=0.0, le=1.0)
    log_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    default_max_results: int = Field(default=10, ge=1)
    default_min_score: float = Field(default=0.1, ge=0.0, le=1.0)
    history_token_threshold: int = Field(default=184_000, ge=1)
    history_trigger_ratio: float = Field(default=0.8, gt=0.0, le=1.0)
    history_window: int = Field(default=40, ge=1)
    compaction_threshold: int = Field(default=8000, ge=1)
    fallback_memory_file: str = "MEMORY.md"

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("memory_dir", "db_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path | None:
        if value is None:
            return None
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("paths must be a path or string")

    @property
    def database_path(self) -> Path:
        return self.db_path if self.db_path is not None else self.memory_dir / "memory.db"

    @property
    def archive_dir(self) -> Path:
        return self.memory_dir / "archive"

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with MEMX_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for the CLI and the engine factory."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
