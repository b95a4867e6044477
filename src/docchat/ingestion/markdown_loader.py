"""Markdown loading and chunking utilities.

Documents are split at ATX headings (``#`` to ``######``), then each section
is cut into overlapping word windows.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional

from docchat.models import Chunk, MarkdownChunkMetadata
from docchat.utils.text import chunk_words

LOGGER = logging.getLogger(__name__)

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
DEFAULT_SECTION_TITLE = "Introduction"


@dataclass(slots=True)
class Section:
    title: str
    content: str
    level: int = 0


def split_sections(content: str) -> List[Section]:
    """Split a Markdown document at heading lines.

    The heading line stays part of its section. Text before the first heading
    belongs to an ``Introduction`` section. Sections that are blank after
    trimming are dropped.
    """
    sections: List[Section] = []
    current = Section(title=DEFAULT_SECTION_TITLE, content="")
    lines: List[str] = []

    for line in content.splitlines():
        match = HEADING_RE.match(line)
        if match:
            current.content = "\n".join(lines)
            if current.content.strip():
                sections.append(current)
            current = Section(title=match.group(2).strip(), content="", level=len(match.group(1)))
            lines = [line]
        else:
            lines.append(line)

    current.content = "\n".join(lines)
    if current.content.strip():
        sections.append(current)
    return sections


def extract_title(content: str) -> Optional[str]:
    """Return the first level-one heading, if any."""
    for line in content.splitlines():
        match = HEADING_RE.match(line)
        if match and len(match.group(1)) == 1:
            return match.group(2).strip()
    return None


def build_markdown_chunks(
    content: str,
    file_name: str,
    *,
    max_words: int = 500,
    overlap: int = 50,
) -> Iterator[Chunk]:
    """Produce chunks for a Markdown document in document order."""
    sequence = 0
    for section_index, section in enumerate(split_sections(content)):
        for sub_index, text in enumerate(
            chunk_words(section.content, max_words=max_words, overlap=overlap)
        ):
            yield Chunk(
                content=text,
                index=sequence,
                metadata=MarkdownChunkMetadata(
                    file_name=file_name,
                    section=section.title,
                    section_index=section_index,
                    sub_index=sub_index,
                    heading_level=section.level,
                ),
            )
            sequence += 1

    if sequence == 0 and content.strip():
        LOGGER.warning("No sections extracted from %s, keeping raw content", file_name)
        yield Chunk(
            content=content.strip(),
            index=0,
            metadata=MarkdownChunkMetadata(file_name=file_name, section=DEFAULT_SECTION_TITLE),
        )
