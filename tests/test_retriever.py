"""Tests for Retriever and result formatting."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from docchat.errors import ValidationError
from docchat.index.cache import RetrievalCache
from docchat.index.retriever import (
    MAX_QUERY_CHARS,
    Retriever,
    compute_confidence,
    format_results,
    group_by_document,
)
from docchat.models import MarkdownChunkMetadata, SearchOptions, SearchResult


def _result(similarity: float, file_name: str = "a.md", index: int = 0) -> SearchResult:
    return SearchResult(
        chunk_id=f"{file_name}-{index}",
        document_id=file_name,
        content="content",
        chunk_index=index,
        similarity=similarity,
        document_title=file_name,
        file_name=file_name,
        metadata=MarkdownChunkMetadata(file_name=file_name, section="S"),
    )


class TestFormatting:
    """Test confidence and grouping helpers."""

    def test_confidence_is_average_percentage(self) -> None:
        assert compute_confidence([_result(0.8), _result(0.6)]) == pytest.approx(70.0)

    def test_confidence_capped(self) -> None:
        assert compute_confidence([_result(1.2)]) == 100.0

    def test_confidence_empty(self) -> None:
        assert compute_confidence([]) == 0.0

    def test_group_by_document_keeps_order(self) -> None:
        groups = group_by_document([_result(0.9, "b.md"), _result(0.8, "a.md"), _result(0.7, "b.md", 1)])

        assert list(groups) == ["b.md", "a.md"]
        assert len(groups["b.md"]) == 2

    def test_format_results(self) -> None:
        context = format_results([_result(0.9, "a.md"), _result(0.7, "b.md")])

        assert context.has_context is True
        assert context.document_count == 2
        assert context.chunk_count == 2
        assert context.confidence == pytest.approx(80.0)
        assert context.sources()[0]["fileName"] == "a.md"

    def test_format_empty(self) -> None:
        context = format_results([])

        assert context.has_context is False
        assert context.confidence == 0.0
        assert context.results == []


class TestRetriever:
    """Test Retriever caching and validation."""

    def _retriever(self, results):
        search_index = MagicMock()
        search_index.search.return_value = results
        return Retriever(search_index, RetrievalCache()), search_index

    def test_uses_cache(self) -> None:
        retriever, search_index = self._retriever([_result(0.9)])

        first = retriever.retrieve_context("how to install")
        second = retriever.retrieve_context("how to install")

        assert search_index.search.call_count == 1
        assert first.results == second.results

    def test_different_options_miss(self) -> None:
        retriever, search_index = self._retriever([_result(0.9)])

        retriever.retrieve_context("q")
        retriever.retrieve_context("q", SearchOptions(top_k=2))

        assert search_index.search.call_count == 2

    def test_no_results(self) -> None:
        retriever, _ = self._retriever([])

        context = retriever.retrieve_context("anything")

        assert context.has_context is False
        assert context.confidence == 0.0

    @pytest.mark.parametrize("query", ["", "   ", "x" * (MAX_QUERY_CHARS + 1)])
    def test_invalid_query(self, query: str) -> None:
        retriever, search_index = self._retriever([])

        with pytest.raises(ValidationError):
            retriever.retrieve_context(query)
        search_index.search.assert_not_called()

    def test_clear_cache(self) -> None:
        retriever, search_index = self._retriever([_result(0.9)])
        retriever.retrieve_context("q")

        retriever.clear_cache()
        retriever.retrieve_context("q")

        assert search_index.search.call_count == 2

    def test_index_stats(self) -> None:
        retriever, search_index = self._retriever([_result(0.9)])
        search_index.store.count_chunks.return_value = 10
        search_index.store.count_embedded_chunks.return_value = 8
        retriever.retrieve_context("q")

        stats = retriever.index_stats()

        assert stats == {
            "total_chunks": 10,
            "chunks_with_embeddings": 8,
            "index_coverage": 80.0,
            "cache_size": 1,
        }

    def test_index_stats_empty(self) -> None:
        retriever, search_index = self._retriever([])
        search_index.store.count_chunks.return_value = 0
        search_index.store.count_embedded_chunks.return_value = 0

        assert retriever.index_stats()["index_coverage"] == 0.0

    def test_build_index(self) -> None:
        retriever, search_index = self._retriever([])
        search_index.build_index.return_value = 3

        assert retriever.build_index() == 3
