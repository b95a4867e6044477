"""Request/response cycle of a documentation chat."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from docchat.chat.context import ContextBuilder
from docchat.chat.generation import (
    GenerationProvider,
    GenerationResult,
    build_messages,
    build_system_prompt,
)
from docchat.chat.sessions import SQLiteSessionStore
from docchat.errors import (
    ChatProcessingError,
    ConfigurationError,
    NotFoundError,
    ProviderAuthError,
    ProviderRateLimitError,
    ValidationError,
)
from docchat.index.retriever import RetrievedContext, Retriever
from docchat.index.storage import utc_now
from docchat.models import ConversationTurn
from docchat.utils.text import preview

LOGGER = logging.getLogger(__name__)

NO_CONTEXT_RESPONSE = """I couldn't find relevant information in the uploaded documentation to answer your question.

Here are some things you can try:

1. **Rephrase your question** - Try asking in a different way or with more specific terms
2. **Upload documentation** - Make sure you've uploaded the relevant documentation files
3. **Check your question** - Ensure your question is about topics covered in the uploaded docs

If you need help with something specific, please let me know and I'll do my best to assist!"""
NO_CONTEXT_WARNING = "No relevant documentation found. Please upload documentation first."


@dataclass(slots=True)
class ChatResponse:
    session_id: str
    message: str
    sources: List[Dict[str, Any]] = field(default_factory=list)
    confidence: float = 0.0
    warning: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ChatService:
    """Ties retrieval, context assembly, generation and session history together."""

    def __init__(
        self,
        retriever: Retriever,
        generator: GenerationProvider,
        sessions: SQLiteSessionStore,
        *,
        context_builder: Optional[ContextBuilder] = None,
        history_limit: int = 20,
        prompt_history: int = 10,
        context_tokens: int = 6000,
    ) -> None:
        self.retriever = retriever
        self.generator = generator
        self.sessions = sessions
        self.context_builder = context_builder or ContextBuilder()
        self.history_limit = history_limit
        self.prompt_history = prompt_history
        self.context_tokens = context_tokens

    def process_message(self, message: str, session_id: Optional[str] = None) -> ChatResponse:
        """Answer one user message within a (possibly new) session."""
        return self._run(message, session_id, self.generator.generate)

    def stream_message(
        self,
        message: str,
        on_text: Callable[[str], None],
        session_id: Optional[str] = None,
    ) -> ChatResponse:
        """Like ``process_message`` but forwards answer fragments as they arrive."""
        generate_stream = getattr(self.generator, "generate_stream", None)
        if generate_stream is None:
            raise ConfigurationError(
                f"{type(self.generator).__name__} does not support streaming",
                user_message=ConfigurationError.default_user_message,
            )
        return self._run(
            message,
            session_id,
            lambda system, messages: generate_stream(system, messages, on_text),
        )

    def _run(
        self,
        message: str,
        session_id: Optional[str],
        generate: Callable[[str, List[Dict[str, str]]], GenerationResult],
    ) -> ChatResponse:
        start = time.perf_counter()
        try:
            session_id = self.sessions.get_or_create_session(session_id)
            LOGGER.info('Processing message in session %s: "%s"', session_id, preview(message))

            context = self.retriever.retrieve_context(message)
            if not context.has_context:
                LOGGER.warning("No relevant context found for query")
                return ChatResponse(
                    session_id=session_id,
                    message=NO_CONTEXT_RESPONSE,
                    sources=[],
                    confidence=0.0,
                    warning=NO_CONTEXT_WARNING,
                )

            history = [turn.as_message() for turn in self.sessions.get_history(session_id, self.history_limit)]
            system_prompt = build_system_prompt(
                context, self.context_builder, max_tokens=self.context_tokens
            )
            messages = build_messages(history, message, limit=self.prompt_history)
            result = generate(system_prompt, messages)

            sources = context.sources()
            self._persist(session_id, message, result.text, sources)
        except ProviderAuthError as exc:
            LOGGER.error("Generation provider rejected credentials: %s", exc)
            raise ConfigurationError(
                str(exc), user_message=ConfigurationError.default_user_message
            ) from exc
        except (ProviderRateLimitError, ValidationError, NotFoundError):
            raise
        except Exception as exc:
            LOGGER.exception("Error processing chat message")
            raise ChatProcessingError(f"Failed to process message: {exc}") from exc

        elapsed = (time.perf_counter() - start) * 1000
        LOGGER.info("Response generated in %.0fms", elapsed)
        return ChatResponse(
            session_id=session_id,
            message=result.text,
            sources=sources,
            confidence=context.confidence,
            metadata=self._metadata(context, elapsed, result),
        )

    def _persist(
        self, session_id: str, message: str, answer: str, sources: List[Dict[str, Any]]
    ) -> None:
        now = utc_now()
        self.sessions.append_turns(
            session_id,
            [
                ConversationTurn(session_id=session_id, role="user", content=message, timestamp=now),
                ConversationTurn(
                    session_id=session_id,
                    role="assistant",
                    content=answer,
                    timestamp=now,
                    sources=sources,
                ),
            ],
        )

    @staticmethod
    def _metadata(
        context: RetrievedContext, elapsed_ms: float, result: GenerationResult
    ) -> Dict[str, Any]:
        return {
            "document_count": context.document_count,
            "chunk_count": context.chunk_count,
            "processing_time_ms": round(elapsed_ms, 1),
            "usage": dict(result.usage),
        }

    # -- session administration -------------------------------------------------

    def get_history(self, session_id: str, limit: Optional[int] = None) -> List[ConversationTurn]:
        if self.sessions.get_session(session_id) is None:
            raise NotFoundError(f"Session {session_id} not found")
        return self.sessions.get_history(session_id, limit or self.history_limit)

    def clear_session(self, session_id: str) -> int:
        return self.sessions.clear_session(session_id)

    def list_sessions(self, limit: int = 50) -> List[Dict[str, Any]]:
        return self.sessions.list_sessions(limit)

    def session_stats(self, session_id: str) -> Dict[str, Any]:
        return self.sessions.session_stats(session_id)
