"""Context assembly for generation prompts.

Token counts are estimated from character length (about four characters per
token); the budget is enforced on whole chunks, never mid-chunk.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Mapping, Sequence, Tuple

from docchat.index.retriever import group_by_document
from docchat.models import SearchResult

LOGGER = logging.getLogger(__name__)

NO_CONTEXT_TEXT = "No relevant documentation found."
FORMAT_STYLES = ("simple", "compact", "detailed")
SEPARATOR = "\n\n"


@dataclass(slots=True)
class PackedContext:
    text: str
    included: int
    tokens: int


class ContextBuilder:
    def __init__(
        self,
        *,
        max_tokens: int = 8000,
        avg_chars_per_token: int = 4,
        context_share: float = 0.7,
    ) -> None:
        self.max_tokens = max_tokens
        self.avg_chars_per_token = avg_chars_per_token
        self.context_share = context_share

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text) / self.avg_chars_per_token)

    def format_chunk(self, result: SearchResult, index: int, style: str = "detailed") -> str:
        if style == "simple":
            return result.content
        if style == "compact":
            return f"[{index}] {result.content}"

        source = result.file_name or result.document_title or "Unknown"
        section = f" - {result.metadata.section}" if result.metadata.section else ""
        similarity = f" (relevance: {result.similarity * 100:.0f}%)" if result.similarity else ""
        return f"[{source}{section}]{similarity}\n\n{result.content}\n\n---"

    def pack(
        self,
        results: Sequence[SearchResult],
        *,
        max_tokens: int | None = None,
        style: str = "detailed",
    ) -> PackedContext:
        """Greedily add formatted chunks in rank order until the next one would not fit."""
        if style not in FORMAT_STYLES:
            raise ValueError(f"Unknown format style: {style}")
        if not results:
            return PackedContext(text=NO_CONTEXT_TEXT, included=0, tokens=self.estimate_tokens(NO_CONTEXT_TEXT))

        budget = self.max_tokens if max_tokens is None else max_tokens
        parts: List[str] = []
        chars = 0
        for result in results:
            formatted = self.format_chunk(result, len(parts) + 1, style)
            candidate = chars + len(formatted) + (len(SEPARATOR) if parts else 0)
            if math.ceil(candidate / self.avg_chars_per_token) > budget:
                LOGGER.debug(
                    "Token limit reached (%d/%d)",
                    math.ceil(chars / self.avg_chars_per_token),
                    budget,
                )
                break
            parts.append(formatted)
            chars = candidate

        text = SEPARATOR.join(parts).strip()
        LOGGER.info(
            "Built context with %d/%d chunks (~%d tokens)",
            len(parts),
            len(results),
            self.estimate_tokens(text),
        )
        return PackedContext(text=text, included=len(parts), tokens=self.estimate_tokens(text))

    def build_context(
        self,
        results: Sequence[SearchResult],
        *,
        max_tokens: int | None = None,
        style: str = "detailed",
    ) -> str:
        return self.pack(results, max_tokens=max_tokens, style=style).text

    def build_context_with_history(
        self,
        results: Sequence[SearchResult],
        history: Sequence[Mapping[str, str]],
        *,
        max_tokens: int | None = None,
        style: str = "detailed",
    ) -> Tuple[str, int]:
        """Build context from 70% of the budget and fit recent history in the rest.

        Returns the context and how many of the most recent history messages fit.
        """
        budget = self.max_tokens if max_tokens is None else max_tokens
        context = self.build_context(
            results, max_tokens=math.floor(budget * self.context_share), style=style
        )
        remaining = budget - self.estimate_tokens(context)

        used = 0
        count = 0
        for message in reversed(history):
            tokens = self.estimate_tokens(message.get("content", ""))
            if used + tokens > remaining:
                break
            used += tokens
            count += 1

        LOGGER.info("Including %d/%d history messages", count, len(history))
        return context, count

    def truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        if self.estimate_tokens(text) <= max_tokens:
            return text
        return text[: max_tokens * self.avg_chars_per_token] + "... [truncated]"

    def create_sources_summary(self, results: Sequence[SearchResult]) -> str:
        lines = []
        for file_name, chunks in group_by_document(results).items():
            plural = "s" if len(chunks) != 1 else ""
            lines.append(f"- {file_name} ({len(chunks)} section{plural})")
        return "Available documentation:\n" + "\n".join(lines)
