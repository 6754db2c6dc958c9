"""
Shared test doubles.
"""

import re

import pytest

from chatweave.core.errors import EmbeddingError
from chatweave.services.embeddings import EmbeddingProvider

# Each vocabulary word owns one dimension; the last dimension catches
# texts with no vocabulary word at all.
VOCAB = [
    "python", "sort", "list", "sorted", "lambda",
    "rust", "borrow", "checker", "lifetime",
    "garden", "tomato", "soil",
]


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words embeddings over a fixed vocabulary."""

    provider_name = "fake"

    def __init__(self, model_name: str = "fake-model", fail_on: str = None):
        super().__init__(model_name)
        self.fail_on = fail_on
        self.calls = 0

    def _fetch(self, text):
        self.calls += 1
        if self.fail_on and self.fail_on in text:
            raise EmbeddingError("provider unavailable")
        vector = [0.0] * (len(VOCAB) + 1)
        for word in re.findall(r"[a-z]+", text.lower()):
            if word in VOCAB:
                vector[VOCAB.index(word)] += 1.0
        if not any(vector):
            vector[-1] = 1.0
        return vector


@pytest.fixture
def fake_provider():
    """A fresh deterministic embedding provider."""
    return FakeEmbeddingProvider()
