"""Answer generation with Anthropic models."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

import anthropic

from docchat.chat.context import ContextBuilder
from docchat.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from docchat.index.retriever import RetrievedContext

LOGGER = logging.getLogger(__name__)

LOW_CONFIDENCE = 70


@dataclass(slots=True)
class GenerationResult:
    text: str
    usage: Dict[str, int] = field(default_factory=dict)


class GenerationProvider(Protocol):
    def generate(self, system_prompt: str, messages: List[Dict[str, str]]) -> GenerationResult: ...


def first_text_block(blocks: Optional[Iterable[Any]]) -> str:
    """Text of the first ``text`` content block, or an empty string."""
    for block in blocks or []:
        if getattr(block, "type", None) == "text":
            return getattr(block, "text", "") or ""
    return ""


def build_messages(
    history: Sequence[Mapping[str, str]], current: str, *, limit: int = 10
) -> List[Dict[str, str]]:
    """Last ``limit`` history messages followed by the current user message.

    Turns with blank content are left out, and a blank assistant reply also
    drops the user message it answered, so roles keep alternating.
    """
    recent = list(history)[-limit:] if limit > 0 else []
    messages: List[Dict[str, str]] = []
    for message in recent:
        role = "user" if message["role"] == "user" else "assistant"
        content = message.get("content") or ""
        if not content.strip():
            if role == "assistant" and messages and messages[-1]["role"] == "user":
                messages.pop()
            continue
        messages.append({"role": role, "content": content})
    messages.append({"role": "user", "content": current})
    return messages


def build_no_context_prompt() -> str:
    return """You are a helpful documentation assistant. However, no relevant documentation was found for this query.

Please let the user know that:
1. You couldn't find relevant information in the uploaded documentation
2. They might want to:
   - Rephrase their question
   - Upload additional documentation
   - Check if the topic is covered in their documentation
3. You can only answer questions based on the uploaded documentation

Be polite and helpful, and suggest alternative approaches to finding the information they need."""


def build_system_prompt(
    context: RetrievedContext,
    builder: ContextBuilder,
    *,
    max_tokens: int = 6000,
) -> str:
    if not context.has_context or not context.results:
        return build_no_context_prompt()

    formatted = builder.build_context(context.results, max_tokens=max_tokens, style="detailed")
    summary = builder.create_sources_summary(context.results)
    confidence = f"{context.confidence:.0f}"

    return f"""You are an expert documentation assistant. Your role is to help users understand and use a product or library by answering questions based on the official documentation.

## Available Documentation

{summary}

## Documentation Context

{formatted}

## Instructions

1. **Base answers on the provided context**: Only provide information that can be found in or reasonably inferred from the documentation above.

2. **Cite sources**: When referencing specific information, mention which source it comes from (e.g., "According to the API reference...").

3. **Be accurate and precise**: If the documentation doesn't contain the answer, say so clearly. Don't make assumptions or add information that is not in the documentation.

4. **Format code properly**: Use markdown code blocks with language tags. Reuse code examples from the documentation where they exist.

5. **Be helpful and clear**: Give step-by-step explanations when appropriate and break complex topics into parts.

6. **Consider context quality**: The documentation above has a {confidence}% relevance match to the user's question. If the match is low (<{LOW_CONFIDENCE}%), acknowledge potential limitations.

7. **Handle ambiguity**: If the question is unclear, ask for clarification or address the plausible interpretations.

## Response Format

- Use markdown formatting
- Include code blocks with appropriate language tags
- Use bullet points or numbered lists for steps
- Bold important terms or concepts"""


class AnthropicGenerator:
    """Generation provider backed by the Anthropic Messages API."""

    name = "anthropic"

    def __init__(
        self,
        *,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        api_key: Optional[str] = None,
        client: Optional[anthropic.Anthropic] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.api_key = api_key
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            configured = self.api_key or os.environ.get("ANTHROPIC_API_KEY") or os.environ.get(
                "ANTHROPIC_AUTH_TOKEN"
            )
            if not configured:
                raise ProviderAuthError(
                    "Anthropic API key is not configured. Please set the ANTHROPIC_API_KEY "
                    "environment variable.",
                    provider=self.name,
                )
            self._client = anthropic.Anthropic(**({"api_key": self.api_key} if self.api_key else {}))
        return self._client

    def _request(self, system_prompt: str, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": messages,
            "extra_body": {"temperature": self.temperature},
        }

    def generate(self, system_prompt: str, messages: List[Dict[str, str]]) -> GenerationResult:
        try:
            response = self.client.messages.create(**self._request(system_prompt, messages))
        except anthropic.APIError as exc:
            raise self._translate(exc) from exc

        text = first_text_block(response.content)
        usage = _usage(response)
        LOGGER.info(
            "Generated response (%d chars, %d input tokens, %d output tokens)",
            len(text),
            usage["input_tokens"],
            usage["output_tokens"],
        )
        return GenerationResult(text=text, usage=usage)

    def generate_stream(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        on_text: Callable[[str], None],
    ) -> GenerationResult:
        """Stream the answer, passing each text fragment to ``on_text``."""
        fragments: List[str] = []
        try:
            with self.client.messages.stream(**self._request(system_prompt, messages)) as stream:
                for fragment in stream.text_stream:
                    fragments.append(fragment)
                    on_text(fragment)
                final = stream.get_final_message()
        except anthropic.APIError as exc:
            raise self._translate(exc) from exc
        return GenerationResult(text="".join(fragments), usage=_usage(final))

    def _translate(self, exc: anthropic.APIError) -> ProviderError:
        LOGGER.error("Anthropic API call failed: %s", exc)
        if isinstance(exc, anthropic.AuthenticationError):
            return ProviderAuthError(
                "Invalid Anthropic API key. Please check your ANTHROPIC_API_KEY environment variable.",
                provider=self.name,
            )
        if isinstance(exc, anthropic.RateLimitError):
            return ProviderRateLimitError(
                "Anthropic rate limit exceeded. Please try again in a moment.", provider=self.name
            )
        overloaded = isinstance(exc, anthropic.APIStatusError) and exc.status_code == 529
        if overloaded or isinstance(exc, (anthropic.APIConnectionError, anthropic.InternalServerError)):
            return ProviderUnavailableError(
                "Anthropic API is temporarily overloaded. Please try again.", provider=self.name
            )
        return ProviderError(f"Failed to generate response: {exc}", provider=self.name)


def _usage(response: Any) -> Dict[str, int]:
    usage = getattr(response, "usage", None)
    return {
        "input_tokens": getattr(usage, "input_tokens", 0) if usage else 0,
        "output_tokens": getattr(usage, "output_tokens", 0) if usage else 0,
    }
