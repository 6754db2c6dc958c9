"""
FastAPI dependencies for shared resources.

Provides dependency injection for the store and the embedding provider.
"""

from typing import Generator

from chatweave.core.config import get_default_db_path
from chatweave.core.db import Database
from chatweave.services.embeddings import EmbeddingProvider, create_provider


def get_db() -> Generator[Database, None, None]:
    """
    Dependency that provides the store and ensures cleanup.

    Yields
    ------
    Database
        Store opened from CHATWEAVE_DB_PATH (or the default location)

    Notes
    -----
    The store is a working copy; a route that writes must call save()
    before returning.
    """
    db = Database(str(get_default_db_path()))
    try:
        yield db
    finally:
        db.close()


def get_embedding_provider() -> EmbeddingProvider:
    """Embedding provider configured from CHATWEAVE_EMBED_* variables."""
    return create_provider()
