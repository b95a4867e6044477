"""Tests for SQLiteDocumentStore."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import List

import numpy as np
import pytest

from docchat.index.storage import SQLiteDocumentStore
from docchat.models import Chunk, MarkdownChunkMetadata


def _chunks(count: int, file_name: str = "guide.md") -> List[Chunk]:
    return [
        Chunk(
            content=f"chunk {i}",
            index=i,
            metadata=MarkdownChunkMetadata(file_name=file_name, section=f"S{i}"),
        )
        for i in range(count)
    ]


def _add_document(store: SQLiteDocumentStore, vectors: np.ndarray, *, doc_type: str = "markdown") -> str:
    doc_id = store.put_document(
        title="Guide", file_name="guide.md", doc_type=doc_type, content="# Guide", metadata={"k": 1}
    )
    store.put_chunks_with_vectors(doc_id, _chunks(len(vectors)), vectors.astype("float32"))
    return doc_id


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary 3-dimensional store."""
    store = SQLiteDocumentStore(tmp_path / "test.db", dimension=3)
    yield store
    store.close()


class TestSchema:
    """Test SQLiteDocumentStore initialization and schema."""

    def test_init_creates_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "new.db"
        assert not db_path.exists()

        store = SQLiteDocumentStore(db_path, dimension=3)

        assert db_path.exists()
        assert store.dimension == 3
        store.close()

    def test_tables_and_index(self, temp_db: SQLiteDocumentStore) -> None:
        conn = temp_db.connection
        names = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type IN ('table', 'index')")
        }

        assert {"documents", "chunks", "idx_chunks_document_id"} <= names

    def test_pragma_settings(self, temp_db: SQLiteDocumentStore) -> None:
        conn = temp_db.connection

        assert conn.execute("PRAGMA journal_mode").fetchone()[0].lower() == "wal"
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_connection_property(self, temp_db: SQLiteDocumentStore) -> None:
        assert isinstance(temp_db.connection, sqlite3.Connection)


class TestWrites:
    """Test document and chunk persistence."""

    def test_put_and_get_document(self, temp_db: SQLiteDocumentStore) -> None:
        doc_id = _add_document(temp_db, np.eye(3))

        document = temp_db.get_document(doc_id)

        assert document is not None
        assert document["title"] == "Guide"
        assert document["metadata"] == {"k": 1}
        assert [c["chunk_index"] for c in document["chunks"]] == [0, 1, 2]
        assert document["chunks"][1]["metadata"]["section"] == "S1"

    def test_get_missing_document(self, temp_db: SQLiteDocumentStore) -> None:
        assert temp_db.get_document("missing") is None

    def test_length_mismatch(self, temp_db: SQLiteDocumentStore) -> None:
        doc_id = temp_db.put_document(title="t", file_name="f.md", doc_type="markdown", content="c")

        with pytest.raises(ValueError, match="length mismatch"):
            temp_db.put_chunks_with_vectors(doc_id, _chunks(2), np.zeros((1, 3), dtype="float32"))

    def test_dimension_mismatch(self, temp_db: SQLiteDocumentStore) -> None:
        doc_id = temp_db.put_document(title="t", file_name="f.md", doc_type="markdown", content="c")

        with pytest.raises(ValueError, match="dimension"):
            temp_db.put_chunks_with_vectors(doc_id, _chunks(1), np.zeros((1, 5), dtype="float32"))

    def test_unknown_document(self, temp_db: SQLiteDocumentStore) -> None:
        with pytest.raises(KeyError):
            temp_db.put_chunks_with_vectors("nope", _chunks(1), np.ones((1, 3), dtype="float32"))
        assert temp_db.count_chunks() == 0

    def test_delete_cascades(self, temp_db: SQLiteDocumentStore) -> None:
        doc_id = _add_document(temp_db, np.eye(3))

        assert temp_db.delete_document(doc_id) is True
        assert temp_db.count_documents() == 0
        assert temp_db.count_chunks() == 0
        assert temp_db.delete_document(doc_id) is False


class TestReads:
    """Test listing and statistics."""

    def test_list_documents(self, temp_db: SQLiteDocumentStore) -> None:
        _add_document(temp_db, np.eye(3))

        documents = temp_db.list_documents()

        assert len(documents) == 1
        assert documents[0].chunk_count == 3
        assert documents[0].doc_type == "markdown"

    def test_stats(self, temp_db: SQLiteDocumentStore) -> None:
        _add_document(temp_db, np.eye(3))
        _add_document(temp_db, np.eye(3)[:1])

        stats = temp_db.get_stats()

        assert stats["document_count"] == 2
        assert stats["chunk_count"] == 4
        assert stats["average_chunks_per_document"] == 2
        assert temp_db.count_embedded_chunks() == 4

    def test_empty_stats(self, temp_db: SQLiteDocumentStore) -> None:
        assert temp_db.get_stats()["average_chunks_per_document"] == 0


class TestNearestChunks:
    """Test brute-force cosine search."""

    def test_ranked_by_similarity(self, temp_db: SQLiteDocumentStore) -> None:
        vectors = np.array([[1.0, 0.0, 0.0], [0.7, 0.7, 0.0], [0.0, 0.0, 1.0]])
        _add_document(temp_db, vectors)

        rows = temp_db.nearest_chunks(np.array([1.0, 0.1, 0.0]), limit=3)

        assert [row["chunk_index"] for row in rows] == [0, 1, 2]
        distances = [row["distance"] for row in rows]
        assert distances == sorted(distances)
        assert rows[0]["distance"] == pytest.approx(1 - 1 / np.sqrt(1.01), abs=1e-5)
        assert rows[0]["file_name"] == "guide.md"

    def test_limit(self, temp_db: SQLiteDocumentStore) -> None:
        _add_document(temp_db, np.eye(3))

        assert len(temp_db.nearest_chunks(np.ones(3), limit=2)) == 2

    def test_ties_ordered_by_position(self, temp_db: SQLiteDocumentStore) -> None:
        _add_document(temp_db, np.ones((3, 3)))

        rows = temp_db.nearest_chunks(np.ones(3), limit=3)

        assert [row["chunk_index"] for row in rows] == [0, 1, 2]

    def test_filters(self, temp_db: SQLiteDocumentStore) -> None:
        markdown_id = _add_document(temp_db, np.eye(3))
        openapi_id = _add_document(temp_db, np.eye(3), doc_type="openapi")

        by_type = temp_db.nearest_chunks(np.ones(3), limit=10, document_type="openapi")
        by_id = temp_db.nearest_chunks(np.ones(3), limit=10, document_id=markdown_id)

        assert {row["document_id"] for row in by_type} == {openapi_id}
        assert {row["document_id"] for row in by_id} == {markdown_id}

    def test_empty_store(self, temp_db: SQLiteDocumentStore) -> None:
        assert temp_db.nearest_chunks(np.ones(3), limit=5) == []

    def test_index_refreshed_after_writes(self, temp_db: SQLiteDocumentStore) -> None:
        assert temp_db.build_index() == 0
        doc_id = _add_document(temp_db, np.eye(3))
        assert len(temp_db.nearest_chunks(np.ones(3), limit=5)) == 3

        temp_db.delete_document(doc_id)

        assert temp_db.nearest_chunks(np.ones(3), limit=5) == []

    def test_query_dimension_mismatch(self, temp_db: SQLiteDocumentStore) -> None:
        _add_document(temp_db, np.eye(3))

        with pytest.raises(ValueError, match="dimension"):
            temp_db.nearest_chunks(np.ones(4), limit=1)


class TestTransaction:
    """Test transaction rollback."""

    def test_rollback_on_error(self, temp_db: SQLiteDocumentStore) -> None:
        with pytest.raises(RuntimeError):
            with temp_db.transaction() as conn:
                conn.execute(
                    "INSERT INTO documents(id, title, file_name, doc_type, content, created_at) "
                    "VALUES ('x', 't', 'f', 'markdown', 'c', 'now')"
                )
                raise RuntimeError("boom")

        assert temp_db.count_documents() == 0
