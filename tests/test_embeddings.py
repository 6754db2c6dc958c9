"""
Tests for embedding providers and cosine similarity.
"""

import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import requests

from chatweave.core.config import EmbeddingSettings, get_embedding_settings
from chatweave.core.errors import EmbeddingError
from chatweave.services.embeddings import (
    LMStudioEmbeddingProvider,
    OllamaEmbeddingProvider,
    SentenceTransformerProvider,
    cosine_similarity,
    create_provider,
)


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestCosineSimilarity:
    """Tests for cosine_similarity()."""

    def test_identical(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestOllamaProvider:
    """Tests for OllamaEmbeddingProvider."""

    def test_embed(self):
        provider = OllamaEmbeddingProvider(base_url="http://ollama:11434/")
        with patch.object(provider._session, "post", return_value=_response({"embedding": [0.5, 0.25]})) as post:
            vector = provider.embed("hello")

        assert vector.dtype == np.float32
        np.testing.assert_allclose(vector, [0.5, 0.25])
        args, kwargs = post.call_args
        assert args[0] == "http://ollama:11434/api/embeddings"
        assert kwargs["json"] == {"model": "nomic-embed-text", "prompt": "hello"}
        assert kwargs["timeout"] == 30.0

    def test_cache_is_keyed_on_exact_text(self):
        provider = OllamaEmbeddingProvider()
        with patch.object(provider._session, "post", return_value=_response({"embedding": [1.0]})) as post:
            provider.embed("hello")
            provider.embed("hello")
            assert post.call_count == 1
            provider.embed("Hello")
            assert post.call_count == 2
            provider.clear_cache()
            provider.embed("hello")
            assert post.call_count == 3

    def test_null_entries_become_embedding_error(self):
        provider = OllamaEmbeddingProvider()
        with patch.object(provider._session, "post", return_value=_response({"embedding": [0.1, None]})):
            with pytest.raises(EmbeddingError):
                provider.embed("hello")

    def test_unexpected_failure_becomes_embedding_error(self):
        provider = OllamaEmbeddingProvider()
        with patch.object(provider._session, "post", side_effect=RuntimeError("socket reset")):
            with pytest.raises(EmbeddingError, match="socket reset"):
                provider.embed("hello")

    def test_http_error_becomes_embedding_error(self):
        provider = OllamaEmbeddingProvider()
        with patch.object(provider._session, "post", side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(EmbeddingError):
                provider.embed("hello")

    def test_bad_payload(self):
        provider = OllamaEmbeddingProvider()
        with patch.object(provider._session, "post", return_value=_response({"error": "model not found"})):
            with pytest.raises(EmbeddingError):
                provider.embed("hello")

    def test_empty_text_rejected(self):
        provider = OllamaEmbeddingProvider()
        with pytest.raises(EmbeddingError):
            provider.embed("   ")

    def test_connection_check(self):
        provider = OllamaEmbeddingProvider()
        with patch.object(provider._session, "post", side_effect=requests.exceptions.Timeout("slow")):
            assert provider.test_connection() is False
        with patch.object(provider._session, "post", return_value=_response({"embedding": [1.0]})):
            assert provider.test_connection() is True


class TestLMStudioProvider:
    """Tests for LMStudioEmbeddingProvider."""

    def test_embed(self):
        provider = LMStudioEmbeddingProvider(model_name="embed-small")
        payload = {"data": [{"embedding": [0.1, 0.2, 0.3]}]}
        with patch.object(provider._session, "post", return_value=_response(payload)) as post:
            vector = provider.embed("hello")

        assert vector.shape == (3,)
        args, kwargs = post.call_args
        assert args[0] == "http://localhost:1234/v1/embeddings"
        assert kwargs["json"] == {"model": "embed-small", "input": "hello"}

    def test_empty_data(self):
        provider = LMStudioEmbeddingProvider()
        with patch.object(provider._session, "post", return_value=_response({"data": []})):
            with pytest.raises(EmbeddingError):
                provider.embed("hello")


def test_sentence_transformers_missing_raises_embedding_error():
    provider = SentenceTransformerProvider()
    with patch.dict(sys.modules, {"sentence_transformers": None}):
        with pytest.raises(EmbeddingError):
            provider.embed("hello")


def test_sentence_transformers_uses_model():
    provider = SentenceTransformerProvider("mini")
    model = MagicMock()
    model.encode.return_value = np.array([[0.6, 0.8]])
    provider._model = model
    np.testing.assert_allclose(provider.embed("hello"), [0.6, 0.8], rtol=1e-6)
    model.encode.assert_called_once_with(["hello"], normalize_embeddings=True)


class TestCreateProvider:
    """Tests for create_provider()."""

    def test_default_is_ollama(self):
        provider = create_provider(EmbeddingSettings())
        assert isinstance(provider, OllamaEmbeddingProvider)
        assert provider.base_url == "http://localhost:11434"
        assert provider.model_name == "nomic-embed-text"

    def test_lmstudio_with_overrides(self):
        settings = EmbeddingSettings(provider="lmstudio", base_url="http://box:9999", model="m", timeout=5)
        provider = create_provider(settings)
        assert isinstance(provider, LMStudioEmbeddingProvider)
        assert provider.base_url == "http://box:9999"
        assert provider.model_name == "m"
        assert provider.timeout == 5

    def test_sentence_transformers(self):
        provider = create_provider(EmbeddingSettings(provider="sentence-transformers"))
        assert isinstance(provider, SentenceTransformerProvider)
        assert provider.model_name == "all-MiniLM-L6-v2"

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_provider(EmbeddingSettings(provider="magic"))

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("CHATWEAVE_EMBED_PROVIDER", "LMStudio")
        monkeypatch.setenv("CHATWEAVE_EMBED_MODEL", "custom")
        monkeypatch.setenv("CHATWEAVE_EMBED_TIMEOUT", "12.5")
        monkeypatch.delenv("CHATWEAVE_EMBED_URL", raising=False)
        settings = get_embedding_settings()
        assert settings.provider == "lmstudio"
        assert settings.resolved_model() == "custom"
        assert settings.resolved_url() == "http://localhost:1234"
        assert settings.timeout == 12.5
