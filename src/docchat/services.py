"""Wiring of the DocChat components from an ``AppConfig``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from docchat.chat.context import ContextBuilder
from docchat.chat.generation import AnthropicGenerator, GenerationProvider
from docchat.chat.orchestrator import ChatService
from docchat.chat.sessions import SQLiteSessionStore
from docchat.config import AppConfig
from docchat.embedding.embedder import Embedder, EmbeddingProvider
from docchat.embedding.throttle import BatchThrottle
from docchat.index.cache import RetrievalCache
from docchat.index.indexer import Indexer
from docchat.index.retriever import Retriever
from docchat.index.search import SearchPolicy, SimilaritySearchIndex
from docchat.index.storage import SQLiteDocumentStore

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    config: AppConfig
    store: SQLiteDocumentStore
    sessions: SQLiteSessionStore
    embedder: Embedder
    search_index: SimilaritySearchIndex
    cache: RetrievalCache
    retriever: Retriever
    indexer: Indexer
    chat: ChatService

    def close(self) -> None:
        self.store.close()
        self.sessions.close()


def build_embedding_provider(config: AppConfig) -> EmbeddingProvider:
    if config.embedding_backend == "openai":
        from docchat.embedding.openai_provider import OpenAIEmbeddingProvider

        return OpenAIEmbeddingProvider(config.openai_embedding_model)

    from docchat.embedding.encoder import EmbeddingConfig, EmbeddingModel

    return EmbeddingModel(EmbeddingConfig(model_name=config.model_name))


def build_services(
    config: AppConfig,
    *,
    provider: EmbeddingProvider | None = None,
    generator: GenerationProvider | None = None,
    db_path: Path | None = None,
) -> Services:
    """Create every component, sharing one database file between the stores."""
    resolved = Path(db_path or config.resolve_db_path())
    resolved.parent.mkdir(parents=True, exist_ok=True)

    provider = provider or build_embedding_provider(config)
    embedder = Embedder(
        provider,
        max_batch_size=config.embedding_batch_size,
        throttle=BatchThrottle(config.embedding_batch_delay),
    )
    store = SQLiteDocumentStore(resolved, dimension=embedder.dimension)
    sessions = SQLiteSessionStore(resolved)

    search_index = SimilaritySearchIndex(
        embedder,
        store,
        policy=SearchPolicy(
            top_k=config.top_k,
            threshold=config.threshold,
            relax_below=config.relax_below,
            relax_factor=config.relax_factor,
        ),
    )
    cache = RetrievalCache(config.cache_ttl)
    retriever = Retriever(search_index, cache)
    indexer = Indexer(
        embedder,
        store,
        max_words=config.max_words,
        overlap=config.overlap_words,
        batch_size=config.ingest_batch_size,
        throttle=BatchThrottle(config.ingest_batch_delay),
    )
    generator = generator or AnthropicGenerator(
        model=config.generation_model,
        max_tokens=config.generation_max_tokens,
        temperature=config.generation_temperature,
    )
    chat = ChatService(
        retriever,
        generator,
        sessions,
        context_builder=ContextBuilder(),
        history_limit=config.history_limit,
        prompt_history=config.prompt_history,
        context_tokens=config.context_tokens,
    )
    LOGGER.info("Services ready (database %s, %s embeddings)", resolved, config.embedding_backend)
    return Services(
        config=config,
        store=store,
        sessions=sessions,
        embedder=embedder,
        search_index=search_index,
        cache=cache,
        retriever=retriever,
        indexer=indexer,
        chat=chat,
    )
