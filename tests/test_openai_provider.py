"""Tests for the OpenAI embedding provider."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import numpy as np
import openai
import pytest

from docchat.embedding.openai_provider import OpenAIEmbeddingProvider
from docchat.errors import (
    ProviderAuthError,
    ProviderIntegrityError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def _status_error(cls: type, status: int) -> Exception:
    return cls("failure", response=httpx.Response(status, request=REQUEST), body=None)


def _client_returning(*items: SimpleNamespace) -> MagicMock:
    client = MagicMock()
    client.embeddings.create.return_value = SimpleNamespace(data=list(items))
    return client


class TestOpenAIEmbeddingProvider:
    """Test request handling and error classification."""

    def test_sorts_by_index(self) -> None:
        client = _client_returning(
            SimpleNamespace(index=1, embedding=[0.0, 1.0]),
            SimpleNamespace(index=0, embedding=[1.0, 0.0]),
        )
        provider = OpenAIEmbeddingProvider("custom-model", client=client)

        vectors = provider.embed(["first", "second"])

        np.testing.assert_allclose(vectors, [[1.0, 0.0], [0.0, 1.0]])
        assert vectors.dtype == np.float32
        assert provider.dimension == 2
        client.embeddings.create.assert_called_once_with(model="custom-model", input=["first", "second"])

    def test_known_model_dimension(self) -> None:
        assert OpenAIEmbeddingProvider("text-embedding-3-small", client=MagicMock()).dimension == 1536

    def test_empty_response(self) -> None:
        provider = OpenAIEmbeddingProvider(client=_client_returning())

        with pytest.raises(ProviderIntegrityError):
            provider.embed(["x"])

    @pytest.mark.parametrize(
        "error, expected",
        [
            (_status_error(openai.AuthenticationError, 401), ProviderAuthError),
            (_status_error(openai.RateLimitError, 429), ProviderRateLimitError),
            (_status_error(openai.InternalServerError, 500), ProviderUnavailableError),
            (openai.APIConnectionError(request=REQUEST), ProviderUnavailableError),
        ],
    )
    def test_error_classification(self, error: Exception, expected: type) -> None:
        client = MagicMock()
        client.embeddings.create.side_effect = error
        provider = OpenAIEmbeddingProvider(client=client)

        with pytest.raises(expected) as exc_info:
            provider.embed(["x"])
        assert exc_info.value.__cause__ is error
        assert exc_info.value.provider == "openai"

    def test_auth_user_message_is_generic(self) -> None:
        client = MagicMock()
        client.embeddings.create.side_effect = _status_error(openai.AuthenticationError, 401)

        with pytest.raises(ProviderAuthError) as exc_info:
            OpenAIEmbeddingProvider(client=client).embed(["x"])
        assert exc_info.value.user_message == "API configuration error. Please contact support."

    @patch("docchat.embedding.openai_provider.openai.OpenAI")
    def test_client_created_lazily(self, mock_openai: MagicMock) -> None:
        provider = OpenAIEmbeddingProvider()
        mock_openai.assert_not_called()

        provider.client

        mock_openai.assert_called_once_with()

    @patch("docchat.embedding.openai_provider.openai.OpenAI")
    def test_missing_key(self, mock_openai: MagicMock) -> None:
        mock_openai.side_effect = openai.OpenAIError("api_key must be set")

        with pytest.raises(ProviderAuthError):
            OpenAIEmbeddingProvider().embed(["x"])
