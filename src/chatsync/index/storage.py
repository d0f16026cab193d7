"""SQLite vector store with sync bookkeeping."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence

import numpy as np

from chatsync.errors import DimensionMismatchError, StoreUnavailableError
from chatsync.models import ChunkRecord, SyncRecord


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class SQLiteVectorStore:
    """Persistence layer for chunk embeddings and per-source sync state."""

    def __init__(self, db_path: Path, *, dimension: int) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot open vector store {self.db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()
        self._check_dimension()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise StoreUnavailableError(str(exc)) from exc
        except Exception:
            self._conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunks (
                    chunk_id TEXT PRIMARY KEY,
                    source_id TEXT NOT NULL,
                    source_type TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    metadata TEXT,
                    embedding BLOB NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_chunks_source_id
                    ON chunks(source_id)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sync_state (
                    source_id TEXT PRIMARY KEY,
                    content_hash TEXT NOT NULL,
                    chunk_count INTEGER NOT NULL,
                    synced_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS store_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def _check_dimension(self) -> None:
        with self.transaction() as conn:
            row = conn.execute("SELECT value FROM store_meta WHERE key = 'dimension'").fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO store_meta(key, value) VALUES ('dimension', ?)",
                    (str(self.dimension),),
                )
                return
        stored = int(row["value"])
        if stored != self.dimension:
            raise DimensionMismatchError(stored, self.dimension)

    def _vector(self, vector: Any) -> np.ndarray:
        array = np.asarray(vector, dtype="float32").reshape(-1)
        if array.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, int(array.shape[0]))
        return array

    def upsert_chunks(self, chunks: Sequence[ChunkRecord]) -> None:
        """Insert chunks, replacing any existing rows with the same chunk id."""
        rows = []
        for chunk in chunks:
            if chunk.embedding is None:
                raise ValueError(f"Chunk {chunk.chunk_id} has no embedding")
            rows.append(
                (
                    chunk.chunk_id,
                    chunk.source_id,
                    chunk.source_type,
                    chunk.index,
                    chunk.text,
                    json.dumps(chunk.metadata, ensure_ascii=True, sort_keys=True),
                    sqlite3.Binary(self._vector(chunk.embedding).tobytes()),
                )
            )
        with self.transaction() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO chunks(
                    chunk_id, source_id, source_type, chunk_index, content, metadata, embedding
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )

    def delete_by_source(self, source_id: str) -> int:
        """Remove every chunk of a source document; returns how many were removed."""
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM chunks WHERE source_id = ?", (source_id,))
        return cursor.rowcount

    def chunks_for_source(self, source_id: str) -> List[dict]:
        try:
            rows = self._conn.execute(
                """
                SELECT chunk_id, source_type, chunk_index, content, metadata
                FROM chunks WHERE source_id = ? ORDER BY chunk_index
                """,
                (source_id,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc
        return [
            {
                "chunk_id": row["chunk_id"],
                "source_type": row["source_type"],
                "chunk_index": row["chunk_index"],
                "text": row["content"],
                "metadata": row["metadata"],
            }
            for row in rows
        ]

    def search(self, embedding: np.ndarray, *, threshold: float = 0.0, limit: int = 10) -> List[dict]:
        """Cosine-similarity search; results with ``score >= threshold``, best first."""
        query = self._vector(embedding)
        try:
            rows = self._conn.execute(
                """
                SELECT chunk_id, source_id, source_type, chunk_index, content, metadata, embedding
                FROM chunks
                """
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc

        if not rows or limit <= 0:
            return []

        embeddings = np.vstack(
            [np.frombuffer(row["embedding"], dtype="float32") for row in rows]
        ).astype("float64")
        query = query.astype("float64")
        norms = np.linalg.norm(embeddings, axis=1) * np.linalg.norm(query)
        scores = np.divide(embeddings @ query, norms, out=np.zeros(len(rows)), where=norms > 0)

        candidates = np.flatnonzero(scores >= threshold)
        if candidates.size == 0:
            return []
        ordered = candidates[np.argsort(scores[candidates], kind="stable")[::-1]][:limit]

        results: List[dict] = []
        for idx in ordered:
            row = rows[idx]
            results.append(
                {
                    "chunk_id": row["chunk_id"],
                    "source_id": row["source_id"],
                    "source_type": row["source_type"],
                    "chunk_index": row["chunk_index"],
                    "text": row["content"],
                    "metadata": row["metadata"],
                    "score": float(scores[idx]),
                }
            )
        return results

    def get_sync_state(self) -> Dict[str, SyncRecord]:
        try:
            rows = self._conn.execute(
                "SELECT source_id, content_hash, chunk_count, synced_at FROM sync_state"
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc
        return {
            row["source_id"]: SyncRecord(
                source_id=row["source_id"],
                content_hash=row["content_hash"],
                chunk_count=row["chunk_count"],
                synced_at=row["synced_at"],
            )
            for row in rows
        }

    def set_sync_state(self, record: SyncRecord) -> None:
        record.synced_at = record.synced_at or _utcnow()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO sync_state(source_id, content_hash, chunk_count, synced_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(source_id) DO UPDATE SET
                    content_hash = excluded.content_hash,
                    chunk_count = excluded.chunk_count,
                    synced_at = excluded.synced_at
                """,
                (record.source_id, record.content_hash, record.chunk_count, record.synced_at),
            )

    def delete_sync_state(self, source_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM sync_state WHERE source_id = ?", (source_id,))
        return cursor.rowcount > 0

    def get_stats(self) -> Dict[str, Any]:
        try:
            documents = self._conn.execute("SELECT COUNT(*), MAX(synced_at) FROM sync_state").fetchone()
            chunks = self._conn.execute(
                "SELECT COUNT(*), COUNT(DISTINCT source_type) FROM chunks"
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc
        return {
            "totalDocuments": documents[0],
            "totalChunks": chunks[0],
            "lastSync": documents[1],
            "sourcesCount": chunks[1],
        }
