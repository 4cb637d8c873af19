"""Shared fakes for the embedding and generation services."""
import re
from typing import Dict, List, Optional, Sequence

import pytest

from docqa.errors import EmbeddingError, GenerationError

WORD_PATTERN = re.compile(r"[a-z]+")


class FakeEmbedder:
    """Deterministic bag-of-words embedding service.

    Each new word gets the next dimension, so texts sharing words point in
    similar directions.
    """

    def __init__(self, dimension: int = 128, fail_after: Optional[int] = None):
        self.dimension = dimension
        self.fail_after = fail_after
        self.vocabulary: Dict[str, int] = {}
        self.calls: List[List[str]] = []

    def vector(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for word in WORD_PATTERN.findall(text.lower()):
            position = self.vocabulary.setdefault(word, len(self.vocabulary))
            vector[position % self.dimension] += 1.0
        return vector

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if self.fail_after is not None and len(self.calls) >= self.fail_after:
            raise EmbeddingError("embedding service unavailable")
        self.calls.append(list(texts))
        return [self.vector(text) for text in texts]


class StubGenerator:
    """Generation service returning a fixed answer and recording prompts."""

    def __init__(self, answer: str = "Paris.", error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def generator() -> StubGenerator:
    return StubGenerator()


@pytest.fixture
def failing_generator() -> StubGenerator:
    return StubGenerator(error=GenerationError("completion service unavailable"))


@pytest.fixture
def capitals_text() -> str:
    return "Paris is the capital of France. Berlin is the capital of Germany."
