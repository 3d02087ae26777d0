"""Line-addressed chunking."""

from __future__ import annotations

from typing import Sequence

from memory_engine.ingest.types import Chunk
from memory_engine.utils.text import estimate_tokens, join_lines, split_lines

DEFAULT_MAX_CHARS = 1600
DEFAULT_OVERLAP_LINES = 3


def chunk_lines(
    content: str,
    file_path: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_lines: int = DEFAULT_OVERLAP_LINES,
) -> list[Chunk]:
    """Split text into overlapping chunks of whole lines.

    Every chunk after the first repeats up to ``overlap_lines`` trailing lines
    of its predecessor (never more than the number of chunks emitted so far).
    The overlap shrinks when keeping it would push the chunk past
    ``max_chars``; a single line longer than ``max_chars`` is emitted on its own.
    """
    lines = split_lines(content)
    if not lines:
        return []

    chunks: list[Chunk] = []
    start = 0
    size = 0
    for index, line in enumerate(lines):
        line_size = len(line) + 1
        if index > start and size + line_size > max_chars:
            chunks.append(_finalize_chunk(file_path, lines, start, index))
            overlap = _overlap_for(lines, start, index, len(chunks), overlap_lines, line_size, max_chars)
            start = index - overlap
            size = sum(len(item) + 1 for item in lines[start:index])
        size += line_size

    chunks.append(_finalize_chunk(file_path, lines, start, len(lines)))
    return chunks


def _overlap_for(
    lines: Sequence[str],
    chunk_start: int,
    boundary: int,
    emitted: int,
    overlap_lines: int,
    next_line_size: int,
    max_chars: int,
) -> int:
    overlap = min(overlap_lines, emitted, boundary - chunk_start)
    while overlap > 0:
        carried = sum(len(item) + 1 for item in lines[boundary - overlap : boundary])
        if carried + next_line_size <= max_chars:
            break
        overlap -= 1
    return overlap


def _finalize_chunk(file_path: str, lines: Sequence[str], start: int, end: int) -> Chunk:
    text = join_lines(lines[start:end])
    return Chunk(
        file_path=file_path,
        start_line=start + 1,
        end_line=end,
        content=text,
        token_count=estimate_tokens(text),
    )


__all__ = ["chunk_lines", "DEFAULT_MAX_CHARS", "DEFAULT_OVERLAP_LINES"]
