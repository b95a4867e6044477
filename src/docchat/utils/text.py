"""Text helpers including word-window chunking."""

from __future__ import annotations

from typing import Iterable, List


def chunk_words(text: str, *, max_words: int = 500, overlap: int = 50) -> List[str]:
    """Split text into overlapping word windows.

    Words accumulate until ``max_words`` is reached, the window is emitted and
    accumulation restarts from its last ``overlap`` words. Text that already
    fits in one window is returned unchanged (stripped) so its line structure
    survives. A trailing window made only of overlap words is not emitted.
    """
    if max_words < 1:
        raise ValueError("max_words must be positive")
    if not 0 <= overlap < max_words:
        raise ValueError("overlap must be smaller than max_words")

    words = text.split()
    if not words:
        return []
    if len(words) <= max_words:
        return [text.strip()]

    chunks: List[str] = []
    window: List[str] = []
    fresh = 0
    for word in words:
        window.append(word)
        fresh += 1
        if len(window) >= max_words:
            chunks.append(" ".join(window))
            window = window[-overlap:] if overlap else []
            fresh = 0

    if fresh:
        chunks.append(" ".join(window))
    return chunks


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def preview(text: str, limit: int = 100) -> str:
    """Single-line prefix of ``text`` for log messages."""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[:limit] + "..."
