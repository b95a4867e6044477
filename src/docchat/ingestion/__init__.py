"""Format-aware chunking of uploaded documentation."""

from __future__ import annotations

from pathlib import PurePath
from typing import List

from docchat.ingestion import markdown_loader, openapi_loader
from docchat.models import Chunk
from docchat.utils.files import DOC_TYPE_MARKDOWN, detect_document_type


def build_chunks(
    content: str,
    file_name: str,
    *,
    doc_type: str | None = None,
    max_words: int = 500,
    overlap: int = 50,
) -> List[Chunk]:
    """Chunk ``content`` with the loader matching its document type."""
    doc_type = doc_type or detect_document_type(file_name)
    loader = (
        markdown_loader.build_markdown_chunks
        if doc_type == DOC_TYPE_MARKDOWN
        else openapi_loader.build_openapi_chunks
    )
    return list(loader(content, file_name, max_words=max_words, overlap=overlap))


def extract_title(content: str, file_name: str, doc_type: str) -> str:
    """Document title: first H1 or ``info.title``, else the file stem."""
    if doc_type == DOC_TYPE_MARKDOWN:
        title = markdown_loader.extract_title(content)
    else:
        title = openapi_loader.extract_title(content)
    return title or PurePath(file_name).stem
