"""Time helpers."""

from __future__ import annotations

import time
from datetime import datetime


def now_ms() -> int:
    """Return current timestamp in milliseconds."""
    return int(time.time() * 1000)


def timestamp_slug(moment: datetime | None = None) -> str:
    """Filesystem-safe local timestamp, e.g. ``20260219_143000``."""
    return (moment or datetime.now()).strftime("%Y%m%d_%H%M%S")
