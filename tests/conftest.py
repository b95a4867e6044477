"""Shared test doubles for providers, clocks and stores."""

from __future__ import annotations

import zlib
from typing import Dict, List, Sequence

import numpy as np
import pytest

from docchat.chat.generation import GenerationResult
from docchat.embedding.embedder import Embedder
from docchat.embedding.throttle import BatchThrottle
from docchat.index.storage import SQLiteDocumentStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class HashingProvider:
    """Bag-of-words embedding: texts sharing words get similar vectors."""

    name = "hashing"

    def __init__(self, dimension: int = 32) -> None:
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        self.calls.append(list(texts))
        vectors = np.zeros((len(texts), self.dimension), dtype="float32")
        for row, text in enumerate(texts):
            for word in text.lower().split():
                vectors[row, zlib.crc32(word.encode("utf-8")) % self.dimension] += 1.0
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return vectors / norms


class FakeGenerator:
    """Generation provider recording every call."""

    def __init__(self, text: str = "Generated answer") -> None:
        self.text = text
        self.calls: List[Dict[str, object]] = []

    def generate(self, system_prompt: str, messages: List[Dict[str, str]]) -> GenerationResult:
        self.calls.append({"system": system_prompt, "messages": messages})
        return GenerationResult(text=self.text, usage={"input_tokens": 10, "output_tokens": 5})


def no_wait_throttle() -> BatchThrottle:
    return BatchThrottle(0.0)


@pytest.fixture
def provider() -> HashingProvider:
    return HashingProvider()


@pytest.fixture
def embedder(provider: HashingProvider) -> Embedder:
    return Embedder(provider, max_batch_size=100, throttle=no_wait_throttle())


@pytest.fixture
def store(tmp_path, provider: HashingProvider):
    db = SQLiteDocumentStore(tmp_path / "docs.db", dimension=provider.dimension)
    yield db
    db.close()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
