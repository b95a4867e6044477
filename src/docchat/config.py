"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from docchat.embedding.encoder import DEFAULT_MODEL

DEFAULT_DB_PATH = Path("data/docchat.db")
DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_GENERATION_MODEL = "claude-3-5-sonnet-20241022"


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    embedding_backend: str = "local"
    model_name: str = DEFAULT_MODEL
    openai_embedding_model: str = DEFAULT_OPENAI_EMBEDDING_MODEL
    generation_model: str = DEFAULT_GENERATION_MODEL
    generation_max_tokens: int = 4096
    generation_temperature: float = 0.3

    # chunking
    max_words: int = 500
    overlap_words: int = 50

    # embedding and ingestion
    embedding_batch_size: int = 100
    embedding_batch_delay: float = 0.2
    ingest_batch_size: int = 20
    ingest_batch_delay: float = 0.1

    # retrieval
    top_k: int = 10
    threshold: float = 0.5
    relax_below: int = 3
    relax_factor: float = 0.8
    cache_ttl: float = 300.0

    # conversation
    history_limit: int = 20
    prompt_history: int = 10
    context_tokens: int = 6000

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = DEFAULT_DB_PATH
        if self.embedding_backend not in ("local", "openai"):
            raise ValueError(f"Unknown embedding backend: {self.embedding_backend}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Build a config, letting ``DOCCHAT_*`` variables override the defaults."""
        env = os.environ if environ is None else environ
        overrides: dict = {}
        if env.get("DOCCHAT_DB"):
            overrides["db_path"] = Path(env["DOCCHAT_DB"])
        if env.get("DOCCHAT_EMBEDDING_BACKEND"):
            overrides["embedding_backend"] = env["DOCCHAT_EMBEDDING_BACKEND"].lower()
        if env.get("DOCCHAT_EMBEDDING_MODEL"):
            # the variable names whichever model the selected backend uses
            key = (
                "openai_embedding_model"
                if overrides.get("embedding_backend") == "openai"
                else "model_name"
            )
            overrides[key] = env["DOCCHAT_EMBEDDING_MODEL"]
        if env.get("DOCCHAT_GENERATION_MODEL"):
            overrides["generation_model"] = env["DOCCHAT_GENERATION_MODEL"]
        if env.get("DOCCHAT_MAX_TOKENS"):
            overrides["generation_max_tokens"] = int(env["DOCCHAT_MAX_TOKENS"])
        if env.get("DOCCHAT_TEMPERATURE"):
            overrides["generation_temperature"] = float(env["DOCCHAT_TEMPERATURE"])
        if env.get("DOCCHAT_CACHE_TTL"):
            overrides["cache_ttl"] = float(env["DOCCHAT_CACHE_TTL"])
        if env.get("DOCCHAT_TOP_K"):
            overrides["top_k"] = int(env["DOCCHAT_TOP_K"])
        if env.get("DOCCHAT_THRESHOLD"):
            overrides["threshold"] = float(env["DOCCHAT_THRESHOLD"])
        return cls(**overrides)

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = DEFAULT_DB_PATH
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
