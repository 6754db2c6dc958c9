"""
Embedding providers.

The consolidation service only needs ``embed(text) -> vector`` and a
cosine similarity; the providers here wrap a local Ollama or LM Studio
server over HTTP, or a sentence-transformers model loaded in-process.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import numpy as np
import requests

from chatweave.core.config import EmbeddingSettings, get_embedding_settings
from chatweave.core.errors import EmbeddingError

logger = logging.getLogger(__name__)


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero norm.

    Raises
    ------
    ValueError
        If the vectors differ in dimension.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise ValueError(f"Embeddings must have same dimension ({a.shape[0]} != {b.shape[0]})")
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0:
        return 0.0
    return float(np.dot(a, b) / denom)


class EmbeddingProvider(ABC):
    """
    Base class for embedding providers.

    Subclasses implement ``_fetch``; results are cached per exact text
    for the lifetime of the provider. Any failure inside ``_fetch`` is
    raised as EmbeddingError.
    """

    def __init__(self, model_name: str):
        self.model_name = model_name
        self._cache: Dict[str, np.ndarray] = {}

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short provider tag (ollama, lmstudio, ...)."""
        pass

    @abstractmethod
    def _fetch(self, text: str) -> Sequence[float]:
        """Compute the raw embedding of one text."""
        pass

    def _cache_key(self, text: str) -> str:
        return f"{self.provider_name}:{self.model_name}:{text}"

    def embed(self, text: str) -> np.ndarray:
        """
        Embed a single text.

        Parameters
        ----------
        text : str
            Non-empty text

        Returns
        -------
        np.ndarray
            float32 vector

        Raises
        ------
        EmbeddingError
            If the text is empty or the provider fails.
        """
        if not text or not text.strip():
            raise EmbeddingError("Text cannot be empty")

        key = self._cache_key(text)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            vector = np.asarray(self._fetch(text), dtype=np.float32)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"{self.provider_name} failed: {e}") from e
        if vector.ndim != 1 or vector.size == 0:
            raise EmbeddingError(f"{self.provider_name} returned an empty embedding")
        if not np.all(np.isfinite(vector)):
            raise EmbeddingError(f"{self.provider_name} returned non-numeric values")
        self._cache[key] = vector
        return vector

    def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        """Embed several texts in order."""
        return [self.embed(text) for text in texts]

    def test_connection(self) -> bool:
        """Check that the provider answers."""
        try:
            self.embed("test")
            return True
        except EmbeddingError as e:
            logger.error("Embedding provider connection test failed: %s", e)
            return False

    def clear_cache(self) -> None:
        self._cache.clear()


class _HttpEmbeddingProvider(EmbeddingProvider):
    """Shared HTTP plumbing for local embedding servers."""

    def __init__(self, model_name: str, base_url: str, timeout: float = 30.0):
        super().__init__(model_name)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise EmbeddingError(f"{self.provider_name} API error: {e}") from e
        except ValueError as e:
            raise EmbeddingError(f"{self.provider_name} returned invalid JSON") from e


class OllamaEmbeddingProvider(_HttpEmbeddingProvider):
    """Embeddings from an Ollama server (``POST /api/embeddings``)."""

    provider_name = "ollama"

    def __init__(
        self,
        model_name: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        timeout: float = 30.0,
    ):
        super().__init__(model_name, base_url, timeout)

    def _fetch(self, text: str) -> Sequence[float]:
        data = self._post("/api/embeddings", {"model": self.model_name, "prompt": text})
        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, list):
            raise EmbeddingError("Invalid embedding response from Ollama")
        return embedding


class LMStudioEmbeddingProvider(_HttpEmbeddingProvider):
    """Embeddings from LM Studio's OpenAI-compatible ``/v1/embeddings``."""

    provider_name = "lmstudio"

    def __init__(
        self,
        model_name: str = "text-embedding-nomic-embed-text-v1.5",
        base_url: str = "http://localhost:1234",
        timeout: float = 30.0,
    ):
        super().__init__(model_name, base_url, timeout)

    def _fetch(self, text: str) -> Sequence[float]:
        data = self._post("/v1/embeddings", {"model": self.model_name, "input": text})
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list) or not items or "embedding" not in items[0]:
            raise EmbeddingError("Invalid embedding response from LM Studio")
        return items[0]["embedding"]


class SentenceTransformerProvider(EmbeddingProvider):
    """In-process sentence-transformers model, loaded on first use."""

    provider_name = "sentence-transformers"

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        super().__init__(model_name)
        self._model = None

    @property
    def model(self):
        """Lazy load the model."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer  # lazy import
            except ImportError as e:
                raise EmbeddingError(
                    "sentence-transformers is required for this provider. "
                    "Install with: pip install 'chatweave[embeddings]'"
                ) from e
            logger.info("Loading sentence transformer model: %s", self.model_name)
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def _fetch(self, text: str) -> Sequence[float]:
        return self.model.encode([text], normalize_embeddings=True)[0]


def create_provider(settings: Optional[EmbeddingSettings] = None) -> EmbeddingProvider:
    """
    Build the provider described by settings (environment when None).

    Raises
    ------
    ValueError
        For an unknown provider name.
    """
    settings = settings or get_embedding_settings()
    model = settings.resolved_model()

    if settings.provider == "ollama":
        return OllamaEmbeddingProvider(model, settings.resolved_url(), settings.timeout)
    if settings.provider == "lmstudio":
        return LMStudioEmbeddingProvider(model, settings.resolved_url(), settings.timeout)
    if settings.provider in ("sentence-transformers", "sentence_transformers"):
        return SentenceTransformerProvider(model)
    raise ValueError(f"Unknown embedding provider: {settings.provider}")
