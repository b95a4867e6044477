"""Tests for Indexer."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from conftest import HashingProvider, no_wait_throttle
from docchat.embedding.embedder import Embedder
from docchat.errors import IngestionFailure, ProviderRateLimitError, UnsupportedFormatError, ValidationError
from docchat.index.indexer import MAX_DOCUMENT_BYTES, Indexer, IndexStats


def _words(count: int, prefix: str) -> str:
    return " ".join(f"{prefix}{i}" for i in range(count))


class FailingProvider(HashingProvider):
    """Fails on the n-th call to ``embed``."""

    def __init__(self, fail_on_call: int) -> None:
        super().__init__()
        self.fail_on_call = fail_on_call

    def embed(self, texts):
        if len(self.calls) + 1 == self.fail_on_call:
            self.calls.append(list(texts))
            raise ProviderRateLimitError("provider throttled")
        return super().embed(texts)


def _indexer(provider, store, **kwargs) -> Indexer:
    embedder = Embedder(provider, throttle=no_wait_throttle())
    return Indexer(embedder, store, throttle=no_wait_throttle(), **kwargs)


class TestIndexStats:
    """Test IndexStats tracking."""

    def test_init_defaults(self) -> None:
        stats = IndexStats()
        assert stats.inserted == 0
        assert stats.skipped == 0
        assert stats.failed == 0
        assert stats.processed_files == []

    @pytest.mark.parametrize("status, field", [("inserted", "inserted"), ("skipped", "skipped"), ("failed", "failed")])
    def test_increment(self, status: str, field: str) -> None:
        stats = IndexStats()
        path = Path("/tmp/guide.md")

        stats.increment(status, path)

        assert getattr(stats, field) == 1
        assert path in stats.processed_files


class TestIngest:
    """Test single document ingestion."""

    def test_two_sections_scenario(self, provider, store) -> None:
        """Two 600-word sections are stored as four ordered chunks."""
        content = f"# Guide\n## Alpha\n{_words(600, 'a')}\n## Beta\n{_words(600, 'b')}"
        indexer = _indexer(provider, store)

        result = indexer.ingest(content, "guide.md")

        document = store.get_document(result.document_id)
        sections = [c["metadata"]["section"] for c in document["chunks"]]
        assert result.chunk_count == 5
        assert result.title == "Guide"
        assert result.doc_type == "markdown"
        assert sections == ["Guide", "Alpha", "Alpha", "Beta", "Beta"]
        assert [c["chunk_index"] for c in document["chunks"]] == [0, 1, 2, 3, 4]
        assert store.count_embedded_chunks() == 5

    def test_exactly_four_chunks(self, provider, store) -> None:
        content = f"## Alpha\n{_words(600, 'a')}\n## Beta\n{_words(600, 'b')}"

        result = _indexer(provider, store).ingest(content, "guide.md")

        document = store.get_document(result.document_id)
        assert [c["chunk_index"] for c in document["chunks"]] == [0, 1, 2, 3]
        assert all(len(c["content"].split()) <= 500 for c in document["chunks"])

    def test_document_metadata(self, provider, store) -> None:
        result = _indexer(provider, store).ingest("# Title\nbody", "notes.md")

        metadata = store.get_document(result.document_id)["metadata"]
        assert metadata["chunk_count"] == 1
        assert metadata["size_bytes"] == len("# Title\nbody")
        assert len(metadata["sha256"]) == 64

    def test_batches_sequentially(self, store) -> None:
        provider = HashingProvider()
        content = "\n".join(f"## Section {i}\nword{i} text" for i in range(45))

        result = _indexer(provider, store, batch_size=20).ingest(content, "many.md")

        assert result.chunk_count == 45
        assert [len(call) for call in provider.calls] == [20, 20, 5]

    def test_rollback_when_second_batch_fails(self, store) -> None:
        provider = FailingProvider(fail_on_call=2)
        content = "\n".join(f"## Section {i}\nword{i} text" for i in range(30))
        indexer = _indexer(provider, store, batch_size=20)

        with pytest.raises(IngestionFailure) as exc_info:
            indexer.ingest(content, "broken.md")

        assert isinstance(exc_info.value.__cause__, ProviderRateLimitError)
        assert exc_info.value.user_message == "Failed to process document chunks. Document has been removed."
        assert store.count_documents() == 0
        assert store.count_chunks() == 0
        assert store.get_document(exc_info.value.document_id) is None

    def test_unsupported_format(self, provider, store) -> None:
        with pytest.raises(UnsupportedFormatError):
            _indexer(provider, store).ingest("%PDF", "manual.pdf")
        assert provider.calls == []

    def test_empty_content(self, provider, store) -> None:
        with pytest.raises(ValidationError, match="empty"):
            _indexer(provider, store).ingest("   ", "empty.md")
        assert store.count_documents() == 0

    def test_oversized_content(self, provider, store) -> None:
        with pytest.raises(ValidationError, match="exceeds"):
            _indexer(provider, store).ingest("a" * (MAX_DOCUMENT_BYTES + 1), "huge.md")

    def test_throttle_between_batches(self, provider, store) -> None:
        throttle = MagicMock()
        embedder = Embedder(provider, throttle=no_wait_throttle())
        indexer = Indexer(embedder, store, batch_size=20, throttle=throttle)
        content = "\n".join(f"## S{i}\nw{i}" for i in range(41))

        indexer.ingest(content, "paced.md")

        assert throttle.wait.call_count == 2


class TestIndexPaths:
    """Test directory indexing."""

    def test_index_directory(self, provider, store, tmp_path: Path) -> None:
        docs = tmp_path / "docs"
        docs.mkdir()
        (docs / "guide.md").write_text("# Guide\nInstall it", encoding="utf-8")
        (docs / "api.json").write_text('{"openapi": "3.0.0", "paths": {}}', encoding="utf-8")
        (docs / "empty.md").write_text("", encoding="utf-8")
        (docs / "binary.md").write_bytes(b"\xff\xfe\x00bad")

        stats = _indexer(provider, store).index([docs])

        assert stats.inserted == 2
        assert stats.skipped == 2
        assert stats.failed == 0
        assert len(stats.processed_files) == 4

    def test_index_records_failures(self, store, tmp_path: Path) -> None:
        path = tmp_path / "guide.md"
        path.write_text("# Guide\ntext", encoding="utf-8")

        stats = _indexer(FailingProvider(fail_on_call=1), store).index([path])

        assert stats.failed == 1
        assert store.count_documents() == 0

    def test_nothing_found(self, provider, store, tmp_path: Path) -> None:
        stats = _indexer(provider, store).index([tmp_path])

        assert stats.processed_files == []
