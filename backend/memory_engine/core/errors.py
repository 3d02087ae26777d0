"""Error taxonomy for the memory engine.

Nothing raised from here is process-fatal: the worst outcome of any of these
is a file whose index stays stale until the next scan.
"""

from __future__ import annotations


class MemoryEngineError(Exception):
    """Base class carrying a short machine-readable error code."""

    default_code = "memory_engine_error"

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code or self.default_code


class IOFailure(MemoryEngineError):
    """File read/write failed: permissions, missing path, bad encoding."""

    default_code = "io_failure"


class StoreFailure(MemoryEngineError):
    """Database query, schema or write failure."""

    default_code = "store_failure"

    def __init__(self, message: str, error_code: str | None = None, committed: int = 0) -> None:
        super().__init__(message, error_code)
        self.committed = committed


class ResourceTimeout(StoreFailure):
    """No pooled connection became available in time. Safe to retry."""

    default_code = "resource_timeout"


class DecodeFailure(MemoryEngineError):
    """The analysis collaborator returned something we could not parse."""

    default_code = "decode_failure"

    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


__all__ = [
    "MemoryEngineError",
    "IOFailure",
    "StoreFailure",
    "ResourceTimeout",
    "DecodeFailure",
]
