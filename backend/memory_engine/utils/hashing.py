"""Hashing utilities."""

from __future__ import annotations

import hashlib
from pathlib import Path


def md5_bytes(data: bytes) -> str:
    """Return the 128-bit hex fingerprint for bytes input."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def md5_file(path: Path) -> str:
    """Return the 128-bit hex fingerprint for file contents."""
    h = hashlib.md5(usedforsecurity=False)
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()
