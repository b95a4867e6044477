"""SQLite document store with brute-force cosine search."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import numpy as np

from docchat.models import Chunk, DocumentRecord

LOGGER = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteDatabase:
    """Shared connection handling for the SQLite-backed stores.

    One connection is shared between threads; every statement runs under a
    re-entrant lock so nested ``transaction()`` blocks join the outer one.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._depth += 1
            try:
                yield self._conn
                if self._depth == 1:
                    self._conn.commit()
            except Exception:
                if self._depth == 1:
                    self._conn.rollback()
                raise
            finally:
                self._depth -= 1

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _ensure_schema(self) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class _VectorIndex:
    """In-memory copy of every stored vector, normalised row-wise."""

    chunk_ids: List[str]
    document_ids: np.ndarray
    document_types: np.ndarray
    chunk_indexes: np.ndarray
    matrix: np.ndarray

    def __len__(self) -> int:
        return len(self.chunk_ids)


class SQLiteDocumentStore(SQLiteDatabase):
    """Persistence layer for documents, chunks and chunk embeddings."""

    def __init__(self, db_path: Path, *, dimension: Optional[int] = None) -> None:
        self.dimension = dimension
        self._index: Optional[_VectorIndex] = None
        super().__init__(db_path)

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    file_name TEXT NOT NULL,
                    doc_type TEXT NOT NULL,
                    content TEXT NOT NULL,
                    metadata TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunks (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    metadata TEXT,
                    embedding BLOB,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_chunks_document_id
                    ON chunks(document_id)
                """
            )

    # -- writes ---------------------------------------------------------------

    def put_document(
        self,
        *,
        title: str,
        file_name: str,
        doc_type: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        doc_id = uuid.uuid4().hex
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents(id, title, file_name, doc_type, content, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    doc_id,
                    title,
                    file_name,
                    doc_type,
                    content,
                    json.dumps(metadata or {}, ensure_ascii=True),
                    utc_now(),
                ),
            )
        return doc_id

    def put_chunks_with_vectors(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        embeddings: np.ndarray,
    ) -> None:
        """Insert a batch of chunks and their vectors in one transaction."""
        if embeddings.shape[0] != len(chunks):
            raise ValueError("Embeddings and chunks length mismatch")
        if self.dimension is not None and len(chunks) and embeddings.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension {embeddings.shape[1]} does not match store dimension {self.dimension}"
            )

        created_at = utc_now()
        with self.transaction() as conn:
            exists = conn.execute("SELECT 1 FROM documents WHERE id = ?", (document_id,)).fetchone()
            if exists is None:
                raise KeyError(f"Unknown document {document_id}")
            for chunk, vector in zip(chunks, embeddings):
                conn.execute(
                    """
                    INSERT INTO chunks(id, document_id, chunk_index, content, metadata, embedding, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        uuid.uuid4().hex,
                        document_id,
                        chunk.index,
                        chunk.content,
                        json.dumps(chunk.metadata.to_dict(), ensure_ascii=True),
                        sqlite3.Binary(np.asarray(vector, dtype="float32").tobytes()),
                        created_at,
                    ),
                )
            self._index = None

    def delete_document(self, document_id: str) -> bool:
        with self.transaction() as conn:
            conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
            deleted = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,)).rowcount
            self._index = None
        return deleted > 0

    # -- reads ----------------------------------------------------------------

    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query(
            "SELECT id, title, file_name, doc_type, content, metadata, created_at FROM documents WHERE id = ?",
            (document_id,),
        )
        if not rows:
            return None
        row = rows[0]
        chunks = self._query(
            """
            SELECT id, chunk_index, content, metadata
            FROM chunks WHERE document_id = ? ORDER BY chunk_index
            """,
            (document_id,),
        )
        return {
            "id": row["id"],
            "title": row["title"],
            "file_name": row["file_name"],
            "doc_type": row["doc_type"],
            "content": row["content"],
            "metadata": json.loads(row["metadata"]) if row["metadata"] else {},
            "created_at": row["created_at"],
            "chunks": [
                {
                    "id": chunk["id"],
                    "chunk_index": chunk["chunk_index"],
                    "content": chunk["content"],
                    "metadata": json.loads(chunk["metadata"]) if chunk["metadata"] else {},
                }
                for chunk in chunks
            ],
        }

    def list_documents(self) -> List[DocumentRecord]:
        rows = self._query(
            """
            SELECT d.id, d.title, d.file_name, d.doc_type, d.metadata, d.created_at,
                   COUNT(c.id) AS chunk_count
            FROM documents d
            LEFT JOIN chunks c ON c.document_id = d.id
            GROUP BY d.id
            ORDER BY d.created_at DESC
            """
        )
        return [
            DocumentRecord(
                id=row["id"],
                title=row["title"],
                file_name=row["file_name"],
                doc_type=row["doc_type"],
                created_at=row["created_at"],
                chunk_count=row["chunk_count"],
                metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            )
            for row in rows
        ]

    def count_documents(self) -> int:
        return self._query("SELECT COUNT(*) FROM documents")[0][0]

    def count_chunks(self) -> int:
        return self._query("SELECT COUNT(*) FROM chunks")[0][0]

    def count_embedded_chunks(self) -> int:
        return self._query("SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL")[0][0]

    def get_stats(self) -> Dict[str, Any]:
        document_count = self.count_documents()
        chunk_count = self.count_chunks()
        return {
            "document_count": document_count,
            "chunk_count": chunk_count,
            "average_chunks_per_document": chunk_count / document_count if document_count else 0,
        }

    # -- similarity search ------------------------------------------------------

    def build_index(self) -> int:
        """Reload every stored vector into the in-memory search matrix."""
        with self._lock:
            return self._build_index()

    def _build_index(self) -> int:
        rows = self._query(
            """
            SELECT c.id, c.document_id, c.chunk_index, c.embedding, d.doc_type
            FROM chunks c
            JOIN documents d ON d.id = c.document_id
            WHERE c.embedding IS NOT NULL
            """
        )
        if rows:
            matrix = np.vstack([np.frombuffer(row["embedding"], dtype="float32") for row in rows])
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            matrix = matrix / norms
        else:
            matrix = np.zeros((0, self.dimension or 0), dtype="float32")

        index = _VectorIndex(
            chunk_ids=[row["id"] for row in rows],
            document_ids=np.array([row["document_id"] for row in rows], dtype=object),
            document_types=np.array([row["doc_type"] for row in rows], dtype=object),
            chunk_indexes=np.array([row["chunk_index"] for row in rows], dtype=np.int64),
            matrix=matrix,
        )
        self._index = index
        LOGGER.info("Similarity index built with %d vectors", len(index))
        return len(index)

    def nearest_chunks(
        self,
        query_vector: np.ndarray,
        *,
        limit: int,
        document_type: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return up to ``limit`` chunks ordered by ascending cosine distance.

        Chunks without a stored vector never participate. Equal distances are
        ordered by chunk position.
        """
        with self._lock:
            index = self._index
        if index is None:
            self.build_index()
            with self._lock:
                index = self._index
        if index is None or not len(index) or limit <= 0:
            return []

        query = np.asarray(query_vector, dtype="float32").ravel()
        if query.shape[0] != index.matrix.shape[1]:
            raise ValueError(
                f"Query dimension {query.shape[0]} does not match index dimension {index.matrix.shape[1]}"
            )
        norm = float(np.linalg.norm(query))
        if norm:
            query = query / norm

        mask = np.ones(len(index), dtype=bool)
        if document_type is not None:
            mask &= index.document_types == document_type
        if document_id is not None:
            mask &= index.document_ids == document_id
        positions = np.flatnonzero(mask)
        if not positions.size:
            return []

        similarities = index.matrix[positions] @ query
        order = np.lexsort((index.chunk_indexes[positions], -similarities))[:limit]

        selected = [(index.chunk_ids[positions[i]], float(similarities[i])) for i in order]
        return self._load_chunk_rows(selected)

    def _load_chunk_rows(self, selected: List[tuple[str, float]]) -> List[Dict[str, Any]]:
        if not selected:
            return []
        placeholders = ",".join("?" for _ in selected)
        rows = self._query(
            f"""
            SELECT c.id, c.document_id, c.chunk_index, c.content, c.metadata,
                   d.title AS document_title, d.file_name, d.doc_type
            FROM chunks c
            JOIN documents d ON d.id = c.document_id
            WHERE c.id IN ({placeholders})
            """,
            [chunk_id for chunk_id, _ in selected],
        )
        by_id = {row["id"]: row for row in rows}
        results: List[Dict[str, Any]] = []
        for chunk_id, similarity in selected:
            row = by_id.get(chunk_id)
            if row is None:
                # deleted after the index snapshot was taken
                continue
            results.append(
                {
                    "id": row["id"],
                    "document_id": row["document_id"],
                    "chunk_index": row["chunk_index"],
                    "content": row["content"],
                    "metadata": row["metadata"],
                    "document_title": row["document_title"],
                    "file_name": row["file_name"],
                    "doc_type": row["doc_type"],
                    "distance": 1.0 - similarity,
                }
            )
        return results
