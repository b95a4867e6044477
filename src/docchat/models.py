"""Core DocChat data models."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional

CHUNK_TYPE_MARKDOWN = "markdown"
CHUNK_TYPE_OPENAPI = "openapi"


@dataclass(slots=True)
class ChunkMetadata:
    """Provenance shared by every chunk regardless of source format."""

    file_name: str
    section: str
    chunk_type: str
    section_index: int = 0
    sub_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class MarkdownChunkMetadata(ChunkMetadata):
    chunk_type: str = CHUNK_TYPE_MARKDOWN
    heading_level: int = 0


@dataclass(slots=True)
class OpenAPIChunkMetadata(ChunkMetadata):
    chunk_type: str = CHUNK_TYPE_OPENAPI
    kind: str = "info"
    endpoint: Optional[str] = None
    method: Optional[str] = None
    schema_name: Optional[str] = None
    parse_error: bool = False


_METADATA_TYPES = {
    CHUNK_TYPE_MARKDOWN: MarkdownChunkMetadata,
    CHUNK_TYPE_OPENAPI: OpenAPIChunkMetadata,
}


def metadata_from_dict(data: Dict[str, Any]) -> ChunkMetadata:
    """Rebuild the metadata variant matching ``data["chunk_type"]``.

    Unknown keys are ignored so rows written by older versions still load.
    """
    cls = _METADATA_TYPES.get(data.get("chunk_type", ""), ChunkMetadata)
    known = set(cls.__dataclass_fields__)
    kwargs = {key: value for key, value in data.items() if key in known}
    kwargs.setdefault("file_name", "")
    kwargs.setdefault("section", "")
    if cls is ChunkMetadata:
        kwargs.setdefault("chunk_type", data.get("chunk_type", "unknown"))
    return cls(**kwargs)


def metadata_from_json(raw: Optional[str]) -> ChunkMetadata:
    if not raw:
        return ChunkMetadata(file_name="", section="", chunk_type="unknown")
    return metadata_from_dict(json.loads(raw))


@dataclass(slots=True)
class Chunk:
    """Unit of retrievable document text paired with its provenance."""

    content: str
    index: int
    metadata: ChunkMetadata
    document_id: Optional[str] = None

    @property
    def section_title(self) -> str:
        return self.metadata.section

    @property
    def file_name(self) -> str:
        return self.metadata.file_name


@dataclass(slots=True)
class DocumentRecord:
    """Stored document as reported by the document store."""

    id: str
    title: str
    file_name: str
    doc_type: str
    created_at: str
    chunk_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SearchResult:
    chunk_id: str
    document_id: str
    content: str
    chunk_index: int
    similarity: float
    document_title: str
    file_name: str
    metadata: ChunkMetadata

    def with_similarity(self, similarity: float) -> "SearchResult":
        return replace(self, similarity=similarity)

    def source(self) -> Dict[str, Any]:
        """Flattened provenance attached to assistant turns and API responses."""
        data = self.metadata.to_dict()
        data.update(
            documentId=self.document_id,
            documentTitle=self.document_title,
            fileName=self.file_name,
            similarity=self.similarity,
            chunkIndex=self.chunk_index,
        )
        return data


@dataclass(slots=True)
class SearchOptions:
    top_k: Optional[int] = None
    threshold: Optional[float] = None
    document_type: Optional[str] = None
    document_id: Optional[str] = None

    def cache_key(self, query: str) -> str:
        options = json.dumps(asdict(self), sort_keys=True)
        return f"{query}:{options}"


@dataclass(slots=True)
class ConversationTurn:
    session_id: str
    role: str
    content: str
    timestamp: str
    sources: List[Dict[str, Any]] = field(default_factory=list)

    def as_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}
