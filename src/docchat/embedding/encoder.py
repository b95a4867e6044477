"""Local embedding model management."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from docchat.errors import ProviderUnavailableError

DEFAULT_MODEL = "sentence-transformers/all-mpnet-base-v2"

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` acting as an embedding provider.

    The model runs in-process, so there are no credentials or rate limits;
    load and inference failures surface as ``ProviderUnavailableError``.
    """

    name = "sentence-transformers"

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        try:
            self._model = SentenceTransformer(self.config.model_name, device=self.config.device)
        except (OSError, ValueError) as exc:
            raise ProviderUnavailableError(
                f"Could not load embedding model {self.config.model_name}: {exc}",
                provider=self.name,
            ) from exc
        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info("Loaded embedding model %s (dimension %d)", self.config.model_name, self.dimension)

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        try:
            embeddings = self._model.encode(
                sentences,
                batch_size=self.config.batch_size,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=self.config.normalize,
            )
        except RuntimeError as exc:
            raise ProviderUnavailableError(f"Local embedding failed: {exc}", provider=self.name) from exc
        return embeddings.astype("float32", copy=False)
