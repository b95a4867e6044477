"""Order-preserving batched embedding on top of a provider."""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

import numpy as np

from docchat.embedding.throttle import BatchThrottle
from docchat.errors import ProviderError, ProviderIntegrityError, ValidationError

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_SIZE = 100


class EmbeddingProvider(Protocol):
    dimension: Optional[int]

    def embed(self, texts: Sequence[str]) -> np.ndarray: ...


class Embedder:
    """Validates inputs, splits them into provider batches and checks the output.

    ``embed(texts)[i]`` is always the vector of ``texts[i]``.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        throttle: Optional[BatchThrottle] = None,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be positive")
        self.provider = provider
        self.max_batch_size = max_batch_size
        self.throttle = throttle or BatchThrottle(0.2)

    @property
    def dimension(self) -> Optional[int]:
        return getattr(self.provider, "dimension", None)

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        texts = list(texts)
        for index, text in enumerate(texts):
            if not text or not text.strip():
                raise ValidationError(f"Empty text at index {index}")
        if not texts:
            return np.zeros((0, self.dimension or 0), dtype="float32")

        total_batches = (len(texts) + self.max_batch_size - 1) // self.max_batch_size
        results: List[np.ndarray] = []
        for batch_number, start in enumerate(range(0, len(texts), self.max_batch_size), start=1):
            batch = texts[start : start + self.max_batch_size]
            if total_batches > 1:
                LOGGER.info("Processing embedding batch %d/%d", batch_number, total_batches)
                self.throttle.wait()
            results.append(self._embed_batch(batch))

        vectors = np.vstack(results)
        if vectors.shape[0] != len(texts):
            raise ProviderIntegrityError(
                f"Expected {len(texts)} embeddings but got {vectors.shape[0]}"
            )
        return vectors

    def embed_query(self, text: str) -> np.ndarray:
        if not text or not text.strip():
            raise ValidationError("Cannot generate embedding for empty text")
        return self.embed([text])[0]

    def _embed_batch(self, batch: List[str]) -> np.ndarray:
        LOGGER.debug("Generating embeddings for %d texts", len(batch))
        try:
            vectors = np.asarray(self.provider.embed(batch), dtype="float32")
        except ProviderError:
            LOGGER.error("Embedding provider failed on a batch of %d texts", len(batch))
            raise
        except Exception as exc:
            LOGGER.exception("Unexpected embedding failure")
            raise ProviderError(f"Failed to generate embeddings: {exc}") from exc

        if vectors.ndim != 2 or vectors.shape[0] != len(batch):
            count = vectors.shape[0] if vectors.ndim else 0
            LOGGER.error("Provider returned %d vectors for %d inputs", count, len(batch))
            raise ProviderIntegrityError(f"Expected {len(batch)} embeddings but got {count}")
        return vectors
