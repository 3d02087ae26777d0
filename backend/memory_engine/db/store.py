"""Chunk, metadata and full-text persistence."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Iterable, Iterator, Sequence

from memory_engine.core.errors import StoreFailure
from memory_engine.core.logging import get_logger
from memory_engine.core.metrics import FTS_FALLBACKS, INDEX_SIZE
from memory_engine.db.sqlite import SQLiteDatabase
from memory_engine.ingest.types import Chunk, FileMetadata
from memory_engine.retrieval.cache import QueryCache
from memory_engine.utils.time import now_ms

LOGGER = get_logger(__name__)

DEFAULT_BATCH_SIZE = 1000
_DAY_MS = 86_400_000
_TABLES = ("chunks", "metadata", "fts_index")

_CHUNK_COLUMNS = "c.id, c.file_path, c.start_line, c.end_line, c.content, c.token_count, c.created_at"


class ChunkStore:
    """Owns every write to ``chunks``, ``metadata`` and ``fts_index``.

    A chunk row and its full-text row are always written and deleted in the
    same transaction. Any chunk write clears the query cache.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        cache: QueryCache[Chunk] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.db = db
        self.cache = cache if cache is not None else QueryCache()
        self.batch_size = batch_size
        self.db.ensure_schema()

    # ------------------------------------------------------------------ writes
    def insert_chunk(self, chunk: Chunk) -> int:
        try:
            with self.db.transaction() as cursor:
                chunk_id = self._insert_rows(cursor, [chunk], now_ms())[0]
        except sqlite3.Error as exc:
            raise StoreFailure(f"failed to insert chunk for {chunk.file_path}: {exc}") from exc
        self._invalidate()
        return chunk_id

    def batch_insert_chunks(self, chunks: Sequence[Chunk]) -> int:
        """Insert in transactions of ``batch_size`` rows.

        A failing batch is rolled back on its own; earlier batches stay
        committed and their size is reported on the raised ``StoreFailure``.
        """
        return self._write_batches(chunks, file_path=None)

    def replace_file_chunks(self, file_path: str, chunks: Sequence[Chunk]) -> int:
        """Drop a file's chunks and store new ones; the delete shares the first batch's transaction."""
        return self._write_batches(chunks, file_path=file_path)

    def _write_batches(self, chunks: Sequence[Chunk], file_path: str | None) -> int:
        committed = 0
        created_at = now_ms()
        batches = list(_batched(chunks, self.batch_size))
        if file_path is not None and not batches:
            batches = [[]]
        try:
            for position, batch in enumerate(batches):
                try:
                    with self.db.transaction() as cursor:
                        if position == 0 and file_path is not None:
                            self._delete_chunk_rows(cursor, file_path)
                        self._insert_rows(cursor, batch, created_at)
                except sqlite3.Error as exc:
                    raise StoreFailure(
                        f"batch insert failed after {committed} rows: {exc}",
                        error_code="batch_insert",
                        committed=committed,
                    ) from exc
                committed += len(batch)
        finally:
            self._invalidate()
        return committed

    def _insert_rows(self, cursor: sqlite3.Cursor, chunks: Iterable[Chunk], created_at: int) -> list[int]:
        ids: list[int] = []
        for chunk in chunks:
            cursor.execute(
                """
                INSERT INTO chunks(file_path, start_line, end_line, content, token_count, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.file_path,
                    chunk.start_line,
                    chunk.end_line,
                    chunk.content,
                    chunk.token_count,
                    chunk.created_at if chunk.created_at is not None else created_at,
                ),
            )
            chunk_id = int(cursor.lastrowid)
            cursor.execute(
                "INSERT INTO fts_index(rowid, content, file_path) VALUES (?, ?, ?)",
                (chunk_id, chunk.content, chunk.file_path),
            )
            ids.append(chunk_id)
        return ids

    @staticmethod
    def _delete_chunk_rows(cursor: sqlite3.Cursor, file_path: str) -> int:
        cursor.execute(
            "DELETE FROM fts_index WHERE rowid IN (SELECT id FROM chunks WHERE file_path = ?)",
            (file_path,),
        )
        cursor.execute("DELETE FROM chunks WHERE file_path = ?", (file_path,))
        return cursor.rowcount

    def delete_by_file(self, file_path: str) -> int:
        """Remove a file's chunks, full-text rows and metadata."""
        try:
            with self.db.transaction() as cursor:
                removed = self._delete_chunk_rows(cursor, file_path)
                cursor.execute("DELETE FROM metadata WHERE file_path = ?", (file_path,))
        except sqlite3.Error as exc:
            raise StoreFailure(f"failed to delete {file_path}: {exc}") from exc
        self._invalidate()
        return removed

    def forget_metadata(self, file_path: str) -> None:
        """Drop a fingerprint so the next scan re-indexes the file."""
        try:
            self.db.execute("DELETE FROM metadata WHERE file_path = ?", (file_path,))
        except sqlite3.Error as exc:
            raise StoreFailure(f"failed to forget metadata for {file_path}: {exc}") from exc

    def upsert_metadata(self, metadata: FileMetadata) -> None:
        timestamp = now_ms()
        try:
            self.db.execute(
                """
                INSERT INTO metadata(file_path, size_bytes, last_modified, content_hash, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(file_path) DO UPDATE SET
                    size_bytes = excluded.size_bytes,
                    last_modified = excluded.last_modified,
                    content_hash = excluded.content_hash,
                    updated_at = excluded.updated_at
                """,
                (
                    metadata.file_path,
                    metadata.size_bytes,
                    metadata.last_modified,
                    metadata.content_hash,
                    timestamp,
                    timestamp,
                ),
            )
        except sqlite3.Error as exc:
            raise StoreFailure(f"failed to upsert metadata for {metadata.file_path}: {exc}") from exc

    def clean_expired(self, days: int) -> int:
        """Delete chunks created more than ``days`` days ago."""
        cutoff = now_ms() - days * _DAY_MS
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    "DELETE FROM fts_index WHERE rowid IN (SELECT id FROM chunks WHERE created_at < ?)",
                    (cutoff,),
                )
                cursor.execute("DELETE FROM chunks WHERE created_at < ?", (cutoff,))
                removed = cursor.rowcount
        except sqlite3.Error as exc:
            raise StoreFailure(f"failed to clean expired chunks: {exc}") from exc
        self._invalidate()
        LOGGER.info("Expired chunks removed", extra={"ctx_removed": removed, "ctx_days": days})
        return removed

    # ------------------------------------------------------------------- reads
    def get_metadata(self, file_path: str) -> FileMetadata | None:
        rows = self._query(
            "SELECT file_path, size_bytes, last_modified, content_hash FROM metadata WHERE file_path = ?",
            (file_path,),
        )
        if not rows:
            return None
        row = rows[0]
        return FileMetadata(
            file_path=row["file_path"],
            size_bytes=int(row["size_bytes"]),
            last_modified=int(row["last_modified"]),
            content_hash=row["content_hash"],
        )

    def indexed_files(self) -> list[str]:
        return [row["file_path"] for row in self._query("SELECT file_path FROM metadata ORDER BY file_path")]

    def chunks_for_file(self, file_path: str) -> list[Chunk]:
        rows = self._query(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.file_path = ? ORDER BY c.start_line, c.id",
            (file_path,),
        )
        return [_row_to_chunk(row) for row in rows]

    def full_text_search(self, keyword: str, limit: int = 10) -> list[Chunk]:
        """Ranked full-text lookup, served from the query cache when possible.

        The keyword is handed to FTS5 as a query expression. If FTS5 rejects it
        (or the table is unusable) the call degrades to a substring scan whose
        results are not cached.
        """
        keyword = keyword.strip()
        if not keyword:
            return []
        cached = self.cache.get(keyword, limit)
        if cached is not None:
            return cached
        try:
            rows = self.db.query(
                f"""
                SELECT {_CHUNK_COLUMNS}
                FROM fts_index
                JOIN chunks c ON c.id = fts_index.rowid
                WHERE fts_index MATCH ?
                ORDER BY rank
                LIMIT ?
                """,
                (keyword, limit),
            )
        except sqlite3.Error as exc:
            FTS_FALLBACKS.inc()
            LOGGER.warning(
                "Full-text search failed, using substring search",
                extra={"ctx_query": keyword, "ctx_error": str(exc)},
            )
            return self.basic_substring_search(keyword, limit)
        results = [_row_to_chunk(row) for row in rows]
        self.cache.put(keyword, results)
        return results

    def basic_substring_search(self, keyword: str, limit: int = 10) -> list[Chunk]:
        """Case-insensitive substring match, newest chunks first."""
        rows = self._query(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM chunks c
            WHERE c.content LIKE ? ESCAPE '\\'
            ORDER BY c.created_at DESC, c.id DESC
            LIMIT ?
            """,
            (f"%{_escape_like(keyword)}%", limit),
        )
        return [_row_to_chunk(row) for row in rows]

    def search_by_date_range(self, start: datetime, end: datetime, limit: int = 100) -> list[Chunk]:
        rows = self._query(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM chunks c
            WHERE c.created_at BETWEEN ? AND ?
            ORDER BY c.created_at DESC, c.id DESC
            LIMIT ?
            """,
            (_to_ms(start), _to_ms(end), limit),
        )
        return [_row_to_chunk(row) for row in rows]

    # -------------------------------------------------------------- maintenance
    def vacuum(self) -> None:
        self._maintenance("VACUUM")

    def analyze(self) -> None:
        self._maintenance("ANALYZE")

    def optimize(self) -> None:
        self._maintenance("INSERT INTO fts_index(fts_index) VALUES ('optimize')")
        self.vacuum()
        self.analyze()
        LOGGER.info("Database optimized", extra={"ctx_db": str(self.db.db_path)})

    def _maintenance(self, statement: str) -> None:
        try:
            with self.db.connection() as conn:
                conn.execute(statement)
                conn.commit()
        except sqlite3.Error as exc:
            raise StoreFailure(f"maintenance statement failed ({statement}): {exc}") from exc

    def statistics(self) -> dict[str, Any]:
        row = self._query(
            """
            SELECT
                (SELECT COUNT(*) FROM chunks) AS chunks,
                (SELECT COALESCE(SUM(token_count), 0) FROM chunks) AS tokens,
                (SELECT COUNT(*) FROM metadata) AS files,
                (SELECT COUNT(*) FROM fts_index) AS fts_rows
            """
        )[0]
        INDEX_SIZE.set(row["chunks"])
        size_bytes = self.db.db_path.stat().st_size if self.db.db_path.exists() else 0
        return {
            "chunks": int(row["chunks"]),
            "tokens": int(row["tokens"]),
            "files": int(row["files"]),
            "fts_rows": int(row["fts_rows"]),
            "db_size_bytes": size_bytes,
            "cache": self.cache.stats(),
        }

    def health_check(self) -> dict[str, Any]:
        """Report missing tables, integrity and chunk/full-text row parity."""
        present = {
            row["name"]
            for row in self._query("SELECT name FROM sqlite_master WHERE type IN ('table', 'view')")
        }
        tables = {name: name in present for name in _TABLES}
        integrity = self._query("PRAGMA quick_check")[0][0]
        report: dict[str, Any] = {"tables": tables, "integrity": integrity}
        if all(tables.values()):
            chunk_rows = int(self._query("SELECT COUNT(*) FROM chunks")[0][0])
            fts_rows = int(self._query("SELECT COUNT(*) FROM fts_index")[0][0])
            report.update(chunk_rows=chunk_rows, fts_rows=fts_rows)
            report["ok"] = integrity == "ok" and chunk_rows == fts_rows
        else:
            report["ok"] = False
        return report

    # ----------------------------------------------------------------- helpers
    def _query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        try:
            return self.db.query(sql, params)
        except sqlite3.Error as exc:
            raise StoreFailure(f"query failed: {exc}") from exc

    def _invalidate(self) -> None:
        self.cache.clear()


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=int(row["id"]),
        file_path=row["file_path"],
        start_line=int(row["start_line"]),
        end_line=int(row["end_line"]),
        content=row["content"],
        token_count=int(row["token_count"]),
        created_at=int(row["created_at"]),
    )


def _batched(items: Sequence[Chunk], size: int) -> Iterator[list[Chunk]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


__all__ = ["ChunkStore", "DEFAULT_BATCH_SIZE"]
