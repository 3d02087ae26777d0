"""Text processing helpers."""

from __future__ import annotations

from typing import Iterable


def split_lines(text: str) -> list[str]:
    """Split on ``\\n``; a trailing newline does not add an empty last line."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def join_lines(lines: Iterable[str]) -> str:
    """Join lines back into newline-terminated text."""
    return "".join(f"{line}\n" for line in lines)


def estimate_tokens(text: str) -> int:
    """Cheap deterministic proxy: four characters per token."""
    return len(text) // 4
