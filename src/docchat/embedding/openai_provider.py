"""OpenAI embeddings provider."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
import openai

from docchat.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderIntegrityError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)

LOGGER = logging.getLogger(__name__)

# dimensions of the published text-embedding-3 models
MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider:
    """Embeds texts with the OpenAI embeddings API.

    The client is created on first use so that constructing the provider
    never requires ``OPENAI_API_KEY``.
    """

    name = "openai"
    max_batch_size = 100

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        *,
        client: Optional[openai.OpenAI] = None,
    ) -> None:
        self.model = model
        self._client = client
        self.dimension = MODEL_DIMENSIONS.get(model)

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            try:
                self._client = openai.OpenAI()
            except openai.OpenAIError as exc:
                raise ProviderAuthError(
                    "OpenAI client could not be created. Please check your OPENAI_API_KEY "
                    "environment variable.",
                    provider=self.name,
                ) from exc
        return self._client

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        LOGGER.debug("Requesting %d embeddings from %s", len(texts), self.model)
        try:
            response = self.client.embeddings.create(model=self.model, input=list(texts))
        except openai.AuthenticationError as exc:
            raise ProviderAuthError(
                "OpenAI authentication failed. Please verify your API key.", provider=self.name
            ) from exc
        except openai.RateLimitError as exc:
            raise ProviderRateLimitError(
                "OpenAI rate limit exceeded. Please try again later.", provider=self.name
            ) from exc
        except (openai.APIConnectionError, openai.InternalServerError) as exc:
            raise ProviderUnavailableError(
                f"OpenAI embeddings temporarily unavailable: {exc}", provider=self.name
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(f"Failed to generate embeddings: {exc}", provider=self.name) from exc

        data = sorted(response.data, key=lambda item: item.index)
        if not data:
            raise ProviderIntegrityError("OpenAI returned no embeddings", provider=self.name)
        vectors = np.asarray([item.embedding for item in data], dtype="float32")
        if self.dimension is None:
            self.dimension = int(vectors.shape[1])
        return vectors
