"""
Health and stats API routes.
"""

from fastapi import APIRouter, Depends

from chatweave import __version__
from chatweave.api.deps import get_db
from chatweave.api.schemas import HealthResponse, StatsResponse
from chatweave.core.db import Database

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health():
    """Health check endpoint."""
    return HealthResponse(status="ready", version=__version__)


@router.get("/stats", response_model=StatsResponse)
def stats(db: Database = Depends(get_db)):
    """
    Store summary counts.

    Includes derived-data counts (embeddings, relationships and messages
    per topic) next to the core message/conversation totals.
    """
    base = db.get_stats()
    return StatsResponse(
        **base.model_dump(),
        embeddings=db.embeddings.count(),
        relationships=db.relationships.count(),
        topics=db.topics.get_counts(),
    )
