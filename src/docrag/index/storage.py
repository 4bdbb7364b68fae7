"""SQLite snapshot store for a corpus."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

import numpy as np

from docrag.errors import IntegrityError
from docrag.models import Chunk, CorpusSnapshot, Document, Embedding


class SQLiteCorpusStore:
    """Persists documents, chunks and embeddings so a corpus survives restarts.

    The store only deals in :class:`CorpusSnapshot` objects; it never reaches
    into a corpus manager's internals.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

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
        except Exception:
            self._conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    position INTEGER NOT NULL,
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    text TEXT NOT NULL,
                    character_count INTEGER NOT NULL,
                    size_bytes INTEGER NOT NULL,
                    error TEXT,
                    indexed INTEGER NOT NULL DEFAULT 0,
                    index_error TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunks (
                    position INTEGER PRIMARY KEY,
                    id TEXT NOT NULL,
                    document_id TEXT NOT NULL,
                    document_name TEXT NOT NULL,
                    content TEXT NOT NULL,
                    start_offset INTEGER NOT NULL,
                    end_offset INTEGER NOT NULL,
                    embedding BLOB,
                    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_chunks_document_id
                    ON chunks(document_id)
                """
            )

    def save(self, snapshot: CorpusSnapshot) -> None:
        """Replace the stored corpus with ``snapshot``."""
        if len(snapshot.chunks) != len(snapshot.embeddings):
            raise IntegrityError("Chunks and embeddings length mismatch")

        with self.transaction() as conn:
            conn.execute("DELETE FROM chunks")
            conn.execute("DELETE FROM documents")
            conn.executemany(
                """
                INSERT INTO documents(position, id, name, text, character_count, size_bytes,
                                      error, indexed, index_error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        position,
                        doc.id,
                        doc.name,
                        doc.text,
                        doc.character_count,
                        doc.size_bytes,
                        doc.error,
                        int(doc.indexed),
                        doc.index_error,
                    )
                    for position, doc in enumerate(snapshot.documents)
                ],
            )
            conn.executemany(
                """
                INSERT INTO chunks(position, id, document_id, document_name, content,
                                   start_offset, end_offset, embedding)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        position,
                        chunk.id,
                        chunk.document_id,
                        chunk.document_name,
                        chunk.content,
                        chunk.start,
                        chunk.end,
                        _encode_vector(vector),
                    )
                    for position, (chunk, vector) in enumerate(
                        zip(snapshot.chunks, snapshot.embeddings)
                    )
                ],
            )

    def load(self) -> CorpusSnapshot:
        documents = [
            Document(
                id=row["id"],
                name=row["name"],
                text=row["text"],
                character_count=row["character_count"],
                size_bytes=row["size_bytes"],
                error=row["error"],
                indexed=bool(row["indexed"]),
                index_error=row["index_error"],
            )
            for row in self._conn.execute("SELECT * FROM documents ORDER BY position")
        ]

        chunks: List[Chunk] = []
        embeddings: List[Embedding] = []
        for row in self._conn.execute("SELECT * FROM chunks ORDER BY position"):
            chunks.append(
                Chunk(
                    id=row["id"],
                    document_id=row["document_id"],
                    document_name=row["document_name"],
                    content=row["content"],
                    start=row["start_offset"],
                    end=row["end_offset"],
                )
            )
            embeddings.append(_decode_vector(row["embedding"]))

        return CorpusSnapshot(tuple(documents), tuple(chunks), tuple(embeddings))

    def get_stats(self) -> dict:
        documents = self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
        chunks = self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        embedded = self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL"
        ).fetchone()[0]
        return {"document_count": documents, "chunk_count": chunks, "embedding_count": embedded}


def _encode_vector(vector: Embedding) -> sqlite3.Binary | None:
    if vector is None:
        return None
    return sqlite3.Binary(np.asarray(vector, dtype="float32").tobytes())


def _decode_vector(blob: bytes | None) -> Embedding:
    if blob is None:
        return None
    return np.frombuffer(blob, dtype="float32").copy()
