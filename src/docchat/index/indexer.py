"""Document ingestion pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from docchat.embedding.embedder import Embedder
from docchat.embedding.throttle import BatchThrottle
from docchat.errors import IngestionFailure, ValidationError
from docchat.index.storage import SQLiteDocumentStore
from docchat.ingestion import build_chunks, extract_title
from docchat.utils.files import compute_sha256, detect_document_type, iter_document_paths

LOGGER = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


@dataclass(slots=True)
class IngestionResult:
    document_id: str
    title: str
    file_name: str
    doc_type: str
    chunk_count: int
    size_bytes: int


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


class Indexer:
    """Coordinates chunking, embedding and persistence of one document at a time.

    A document is stored with all of its chunks embedded or not at all.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: SQLiteDocumentStore,
        *,
        max_words: int = 500,
        overlap: int = 50,
        batch_size: int = 20,
        throttle: Optional[BatchThrottle] = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.max_words = max_words
        self.overlap = overlap
        self.batch_size = batch_size
        self.throttle = throttle or BatchThrottle(0.1)

    def ingest(self, content: str, file_name: str) -> IngestionResult:
        """Chunk, embed and store one uploaded document."""
        doc_type = detect_document_type(file_name)
        size_bytes = len(content.encode("utf-8"))
        if not content.strip():
            raise ValidationError(f"Document {file_name} is empty")
        if size_bytes > MAX_DOCUMENT_BYTES:
            raise ValidationError(f"Document {file_name} exceeds {MAX_DOCUMENT_BYTES} bytes")

        LOGGER.info("Processing upload: %s (%d bytes)", file_name, size_bytes)
        chunks = build_chunks(
            content, file_name, doc_type=doc_type, max_words=self.max_words, overlap=self.overlap
        )
        LOGGER.info("Document parsed into %d chunks", len(chunks))

        title = extract_title(content, file_name, doc_type)
        document_id = self.store.put_document(
            title=title,
            file_name=file_name,
            doc_type=doc_type,
            content=content,
            metadata={
                "chunk_count": len(chunks),
                "size_bytes": size_bytes,
                "sha256": compute_sha256(content.encode("utf-8")),
            },
        )
        LOGGER.info("Document saved with ID: %s", document_id)

        try:
            total_batches = (len(chunks) + self.batch_size - 1) // self.batch_size
            for batch_number, start in enumerate(range(0, len(chunks), self.batch_size), start=1):
                batch = chunks[start : start + self.batch_size]
                if batch_number > 1:
                    self.throttle.wait()
                LOGGER.info(
                    "Processing batch %d/%d (%d chunks)", batch_number, total_batches, len(batch)
                )
                embeddings = self.embedder.embed([chunk.content for chunk in batch])
                self.store.put_chunks_with_vectors(document_id, batch, embeddings)
        except Exception as exc:
            LOGGER.exception("Error processing chunks of %s, removing document", file_name)
            self.store.delete_document(document_id)
            raise IngestionFailure(
                f"Failed to process chunks of {file_name}: {exc}", document_id=document_id
            ) from exc

        LOGGER.info("Successfully processed document: %s", file_name)
        return IngestionResult(
            document_id=document_id,
            title=title,
            file_name=file_name,
            doc_type=doc_type,
            chunk_count=len(chunks),
            size_bytes=size_bytes,
        )

    def index(self, paths: Sequence[Path]) -> IndexStats:
        """Ingest every supported file found under the given paths."""
        files = list(iter_document_paths(paths))
        stats = IndexStats()
        if not files:
            LOGGER.warning("No documentation files found")
            return stats

        for path in files:
            try:
                LOGGER.info("Processing: %s", path)
                self.ingest(path.read_text(encoding="utf-8"), path.name)
                stats.increment("inserted", path)
            except (ValidationError, UnicodeDecodeError) as exc:
                LOGGER.warning("Skipping %s: %s", path, exc)
                stats.increment("skipped", path)
            except (IngestionFailure, OSError) as exc:
                LOGGER.error("Failed to process %s: %s", path, exc)
                stats.increment("failed", path)
        return stats
