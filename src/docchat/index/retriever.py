"""Cached retrieval of ranked context for a question."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from docchat.errors import ValidationError
from docchat.index.cache import RetrievalCache
from docchat.index.search import SimilaritySearchIndex
from docchat.models import SearchOptions, SearchResult
from docchat.utils.text import preview

LOGGER = logging.getLogger(__name__)

MAX_QUERY_CHARS = 10_000


@dataclass(slots=True)
class RetrievedContext:
    results: List[SearchResult] = field(default_factory=list)
    has_context: bool = False
    confidence: float = 0.0
    document_count: int = 0
    chunk_count: int = 0

    def sources(self) -> List[Dict[str, Any]]:
        return [result.source() for result in self.results]


def group_by_document(results: Sequence[SearchResult]) -> Dict[str, List[SearchResult]]:
    """Group results by originating file, keeping first-seen order."""
    groups: Dict[str, List[SearchResult]] = {}
    for result in results:
        groups.setdefault(result.file_name or "Unknown", []).append(result)
    return groups


def compute_confidence(results: Sequence[SearchResult]) -> float:
    """Average similarity as a percentage, capped at 100."""
    if not results:
        return 0.0
    average = sum(r.similarity for r in results) / len(results)
    return min(average * 100, 100.0)


def format_results(results: Sequence[SearchResult]) -> RetrievedContext:
    if not results:
        return RetrievedContext()
    return RetrievedContext(
        results=list(results),
        has_context=True,
        confidence=compute_confidence(results),
        document_count=len(group_by_document(results)),
        chunk_count=len(results),
    )


class Retriever:
    """Similarity search behind the retrieval cache."""

    def __init__(self, search_index: SimilaritySearchIndex, cache: RetrievalCache) -> None:
        self.search_index = search_index
        self.cache = cache

    def retrieve_context(self, query: str, options: Optional[SearchOptions] = None) -> RetrievedContext:
        if not query or not query.strip():
            raise ValidationError("Query must not be empty")
        if len(query) > MAX_QUERY_CHARS:
            raise ValidationError(f"Query exceeds {MAX_QUERY_CHARS} characters")

        start = time.perf_counter()
        LOGGER.info('Retrieving context for query: "%s"', preview(query))
        results, hit = self.cache.get_or_compute(
            query, options, lambda: self.search_index.search(query, options)
        )
        if not hit:
            LOGGER.info(
                "Retrieved %d relevant chunks in %.0fms",
                len(results),
                (time.perf_counter() - start) * 1000,
            )
            LOGGER.debug("Similarity scores: %s", ", ".join(f"{r.similarity:.3f}" for r in results))
        return format_results(results)

    def build_index(self) -> int:
        return self.search_index.build_index()

    def clear_cache(self) -> None:
        self.cache.clear()

    def index_stats(self) -> Dict[str, Any]:
        store = self.search_index.store
        total = store.count_chunks()
        embedded = store.count_embedded_chunks()
        return {
            "total_chunks": total,
            "chunks_with_embeddings": embedded,
            "index_coverage": embedded / total * 100 if total else 0.0,
            "cache_size": len(self.cache),
        }
