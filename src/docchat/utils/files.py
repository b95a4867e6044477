"""Utility helpers for working with documentation files."""

from __future__ import annotations

import hashlib
from pathlib import Path, PurePath
from typing import Iterable, Iterator

from docchat.errors import UnsupportedFormatError

DOC_TYPE_MARKDOWN = "markdown"
DOC_TYPE_OPENAPI = "openapi"

SUFFIX_TYPES = {
    ".md": DOC_TYPE_MARKDOWN,
    ".markdown": DOC_TYPE_MARKDOWN,
    ".json": DOC_TYPE_OPENAPI,
    ".yaml": DOC_TYPE_OPENAPI,
    ".yml": DOC_TYPE_OPENAPI,
}


def detect_document_type(file_name: str) -> str:
    """Map a file name to ``markdown`` or ``openapi`` by extension."""
    suffix = PurePath(file_name).suffix.lower()
    try:
        return SUFFIX_TYPES[suffix]
    except KeyError:
        raise UnsupportedFormatError(
            "Unsupported file type. Please upload Markdown (.md) or OpenAPI "
            "(.json, .yaml) files."
        ) from None


def iter_document_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield supported documentation files, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from iter_document_paths(
                sorted(child for child in item.rglob("*") if child.is_file())
            )
        elif item.is_file() and item.suffix.lower() in SUFFIX_TYPES:
            yield item


def compute_sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
