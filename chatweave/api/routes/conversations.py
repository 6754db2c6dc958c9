"""
Conversation API routes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chatweave.api.deps import get_db, get_embedding_provider
from chatweave.api.schemas import (
    BundleSummary,
    ConsolidateRequest,
    ConsolidateResponse,
    ConversationDetail,
    ConversationsResponse,
    ConversationSummary,
    Message,
    RelatedConversation,
    RelatedResponse,
)
from chatweave.core.db import Database
from chatweave.core.db.constants import DEFAULT_PAGE_SIZE, DEFAULT_RELATED_THRESHOLD, MAX_PAGE_SIZE
from chatweave.services.consolidation import ConsolidationService
from chatweave.services.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

router = APIRouter()


def _summary(db: Database, conversation) -> ConversationSummary:
    return ConversationSummary(
        **conversation.model_dump(exclude={"raw_path", "content_hash"}),
        messages_count=db.count_messages(conversation.id),
    )


@router.get("/conversations", response_model=ConversationsResponse)
def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    source: Optional[str] = Query(None, description="Filter by source id"),
    title: Optional[str] = Query(None, description="Regular expression on titles"),
    db: Database = Depends(get_db),
):
    """
    Get paginated list of conversations, most recently updated first.

    Parameters
    ----------
    page : int
        Page number (1-indexed)
    limit : int
        Results per page
    source : str, optional
        Source id filter
    title : str, optional
        Title regular expression; an invalid one matches nothing
    """
    offset = (page - 1) * limit
    conversations = db.select_conversations(source=source, title_regex=title, limit=limit, offset=offset)
    if title:
        total = len(db.select_conversations(source=source, title_regex=title))
    else:
        total = db.count_conversations(source)
    return ConversationsResponse(
        conversations=[_summary(db, c) for c in conversations],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
def get_conversation(conversation_id: int, db: Database = Depends(get_db)):
    """Get a conversation with all its messages in timestamp order."""
    conversation = db.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    messages = db.get_conversation_messages(conversation_id)
    return ConversationDetail(
        **conversation.model_dump(exclude={"raw_path", "content_hash"}),
        messages_count=len(messages),
        messages=[Message(**m.model_dump(mode="json")) for m in messages],
    )


@router.get("/conversations/{conversation_id}/related", response_model=RelatedResponse)
def get_related(
    conversation_id: int,
    threshold: float = Query(DEFAULT_RELATED_THRESHOLD, ge=0.0, le=1.0),
    db: Database = Depends(get_db),
):
    """
    Conversations related to this one by embedding similarity.

    Uses stored relationships; when none exist they are computed from
    stored embeddings and saved.
    """
    if db.get_conversation(conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    had_edges = bool(db.get_relationships_for(conversation_id))
    relationships = ConsolidationService(db).get_related(conversation_id, threshold)
    if not had_edges and relationships:
        db.save()

    related = []
    for rel in relationships:
        other_id = rel.other(conversation_id)
        other = db.get_conversation(other_id)
        related.append(
            RelatedConversation(
                conversation_id=other_id,
                title=other.title if other else None,
                relationship_type=rel.relationship_type.value,
                similarity_score=rel.similarity_score,
            )
        )
    return RelatedResponse(conversation_id=conversation_id, threshold=threshold, related=related)


@router.post("/consolidate", response_model=ConsolidateResponse)
def consolidate(
    options: Optional[ConsolidateRequest] = None,
    db: Database = Depends(get_db),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
):
    """
    Build (or rebuild) embeddings, the relationship graph and bundles.

    The request blocks until the run completes; results are saved.
    """
    options = options or ConsolidateRequest()
    service = ConsolidationService(db, provider=provider)
    if options.rebuild:
        outcome = service.rebuild(options.threshold)
    else:
        outcome = service.build_master_database(options.threshold)
    db.save()

    logger.info(
        "Consolidation via API: %d embedded, %d relationships, %d bundles",
        outcome.embeddings.succeeded,
        outcome.relationships.succeeded,
        len(outcome.bundles),
    )
    return ConsolidateResponse(
        embeddings=outcome.embeddings,
        relationships=outcome.relationships,
        bundles=[
            BundleSummary(
                **bundle.model_dump(exclude={"messages"}),
                messages_count=len(bundle.messages),
            )
            for bundle in outcome.bundles
        ],
        cancelled=outcome.cancelled,
    )
