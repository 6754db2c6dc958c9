"""Services layered on top of the store."""

from .consolidation import ConsolidationService
from .embeddings import EmbeddingProvider, create_provider
from .ingestion import IngestionService
from .search import SearchService, SearchStats

__all__ = [
    "ConsolidationService",
    "EmbeddingProvider",
    "IngestionService",
    "SearchService",
    "SearchStats",
    "create_provider",
]
