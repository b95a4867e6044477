"""Tests for AppConfig."""

from __future__ import annotations

from pathlib import Path

import pytest

from docchat.config import DEFAULT_DB_PATH, DEFAULT_GENERATION_MODEL, AppConfig
from docchat.embedding.encoder import DEFAULT_MODEL


class TestAppConfig:
    """Test AppConfig defaults and overrides."""

    def test_defaults(self) -> None:
        config = AppConfig()

        assert config.db_path == DEFAULT_DB_PATH
        assert config.model_name == DEFAULT_MODEL
        assert config.generation_model == DEFAULT_GENERATION_MODEL
        assert config.max_words == 500
        assert config.overlap_words == 50
        assert config.threshold == 0.5
        assert config.relax_below == 3
        assert config.relax_factor == 0.8
        assert config.cache_ttl == 300.0

    def test_invalid_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown embedding backend"):
            AppConfig(embedding_backend="magic")

    def test_from_env(self) -> None:
        env = {
            "DOCCHAT_DB": "/tmp/chat.db",
            "DOCCHAT_EMBEDDING_BACKEND": "OpenAI",
            "DOCCHAT_EMBEDDING_MODEL": "text-embedding-3-large",
            "DOCCHAT_TOP_K": "5",
            "DOCCHAT_THRESHOLD": "0.3",
            "DOCCHAT_CACHE_TTL": "60",
            "DOCCHAT_TEMPERATURE": "0.1",
        }

        config = AppConfig.from_env(env)

        assert config.db_path == Path("/tmp/chat.db")
        assert config.embedding_backend == "openai"
        assert config.openai_embedding_model == "text-embedding-3-large"
        assert config.model_name == DEFAULT_MODEL
        assert config.top_k == 5
        assert config.threshold == 0.3
        assert config.cache_ttl == 60.0
        assert config.generation_temperature == 0.1

    def test_from_env_local_model(self) -> None:
        config = AppConfig.from_env({"DOCCHAT_EMBEDDING_MODEL": "all-MiniLM-L6-v2"})

        assert config.model_name == "all-MiniLM-L6-v2"

    def test_from_env_empty(self) -> None:
        assert AppConfig.from_env({}).db_path == DEFAULT_DB_PATH

    def test_resolve_relative(self, tmp_path: Path) -> None:
        config = AppConfig(db_path=Path("data/x.db"))

        assert config.resolve_db_path(tmp_path) == tmp_path / "data" / "x.db"

    def test_resolve_absolute(self, tmp_path: Path) -> None:
        config = AppConfig(db_path=tmp_path / "x.db")

        assert config.resolve_db_path(Path("/elsewhere")) == tmp_path / "x.db"
