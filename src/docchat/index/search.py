"""Semantic search interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from docchat.embedding.embedder import Embedder
from docchat.index.storage import SQLiteDocumentStore
from docchat.models import SearchOptions, SearchResult, metadata_from_json

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchPolicy:
    top_k: int = 10
    threshold: float = 0.5
    # fewer hits than this triggers one retry at threshold * relax_factor
    relax_below: int = 3
    relax_factor: float = 0.8


def apply_threshold(
    candidates: Sequence[SearchResult],
    *,
    top_k: int,
    threshold: float,
    relax_below: int = 3,
    relax_factor: float = 0.8,
) -> List[SearchResult]:
    """Keep the best ``top_k`` candidates scoring at least ``threshold``.

    ``candidates`` must already be ordered closest-first. When fewer than
    ``relax_below`` survive but the pool is non-empty, the filter is rerun
    once over the same pool at ``threshold * relax_factor``.
    """
    filtered = [c for c in candidates if c.similarity >= threshold][:top_k]
    if len(filtered) < relax_below and candidates:
        relaxed = threshold * relax_factor
        LOGGER.info(
            "Low result count (%d), lowering threshold %.3f -> %.3f",
            len(filtered),
            threshold,
            relaxed,
        )
        return [c for c in candidates if c.similarity >= relaxed][:top_k]
    return filtered


def rerank(
    results: Sequence[SearchResult],
    query: str,
    *,
    keyword_weight: float = 0.1,
    position_boost: float = 0.05,
    early_chunks: int = 5,
) -> List[SearchResult]:
    """Rescore results by keyword overlap and early position, best first.

    Pure: the input results are left untouched.
    """
    query_words = query.lower().split()
    rescored: List[SearchResult] = []
    for result in results:
        score = result.similarity
        if query_words:
            content_words = set(result.content.lower().split())
            overlap = sum(1 for word in query_words if word in content_words)
            score += overlap / len(query_words) * keyword_weight
        if result.chunk_index < early_chunks:
            score += position_boost
        rescored.append(result.with_similarity(min(score, 1.0)))
    return sorted(rescored, key=lambda r: r.similarity, reverse=True)


def _to_result(row: Dict[str, Any]) -> SearchResult:
    return SearchResult(
        chunk_id=row["id"],
        document_id=row["document_id"],
        content=row["content"],
        chunk_index=row["chunk_index"],
        similarity=1.0 - float(row["distance"]),
        document_title=row["document_title"],
        file_name=row["file_name"],
        metadata=metadata_from_json(row.get("metadata")),
    )


class SimilaritySearchIndex:
    """High-level API to query the document store by meaning."""

    def __init__(
        self,
        embedder: Embedder,
        store: SQLiteDocumentStore,
        *,
        policy: Optional[SearchPolicy] = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.policy = policy or SearchPolicy()

    def search(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
        *,
        rerank_results: bool = False,
    ) -> List[SearchResult]:
        embedding = self.embedder.embed_query(query)
        results = self.search_by_vector(embedding, options)
        return rerank(results, query) if rerank_results else results

    def search_by_vector(
        self, embedding: np.ndarray, options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        options = options or SearchOptions()
        top_k = options.top_k or self.policy.top_k
        threshold = self.policy.threshold if options.threshold is None else options.threshold

        rows = self.store.nearest_chunks(
            embedding,
            limit=top_k * 2,
            document_type=options.document_type,
            document_id=options.document_id,
        )
        candidates = [_to_result(row) for row in rows]
        return apply_threshold(
            candidates,
            top_k=top_k,
            threshold=threshold,
            relax_below=self.policy.relax_below,
            relax_factor=self.policy.relax_factor,
        )

    def build_index(self) -> int:
        return self.store.build_index()
