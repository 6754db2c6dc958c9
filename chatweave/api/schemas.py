"""
Pydantic schemas for API request/response models.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from chatweave.core.models import BatchResult


class HealthResponse(BaseModel):
    """Server readiness."""

    status: str = "ready"
    version: str


class StatsResponse(BaseModel):
    """Store summary counts."""

    total_messages: int
    total_conversations: int
    sources: int
    last_updated: Optional[int] = None
    embeddings: int = 0
    relationships: int = 0
    topics: Dict[str, int] = Field(default_factory=dict)


class SearchHit(BaseModel):
    """One ranked message."""

    id: str
    conversation_id: Optional[int] = None
    title: Optional[str] = None
    role: Optional[str] = None
    vendor: Optional[str] = None
    source_id: Optional[str] = None
    date: Optional[int] = None
    score: float
    snippet: str = ""


class SearchResponse(BaseModel):
    """Search results."""

    query: str
    mode: str = "keyword"
    regex: bool = False
    results: List[SearchHit]
    count: int


class Message(BaseModel):
    """Individual message in a conversation."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    stable_id: Optional[str] = None
    role: str
    ts: int
    text: str = ""
    tool_json: Optional[str] = None


class ConversationSummary(BaseModel):
    """Conversation summary for list views."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    ext_id: Optional[str] = None
    source_id: str
    stable_id: Optional[str] = None
    title: Optional[str] = None
    started_at: Optional[int] = None
    updated_at: Optional[int] = None
    messages_count: int = 0


class ConversationDetail(ConversationSummary):
    """Full conversation with all messages."""

    messages: List[Message] = Field(default_factory=list)


class ConversationsResponse(BaseModel):
    """Paginated conversation list."""

    conversations: List[ConversationSummary]
    total: int
    page: int
    limit: int


class RelatedConversation(BaseModel):
    """A conversation linked by similarity."""

    conversation_id: int
    title: Optional[str] = None
    relationship_type: str
    similarity_score: float


class RelatedResponse(BaseModel):
    """Related conversations for one conversation."""

    conversation_id: int
    threshold: float
    related: List[RelatedConversation]


class ConsolidateRequest(BaseModel):
    """Options for a consolidation run."""

    threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    rebuild: bool = False


class BundleSummary(BaseModel):
    """A consolidated bundle without its message bodies."""

    id: str
    title: str
    conversation_ids: List[int]
    sources: List[str]
    related_conversations: List[int]
    topics: List[str]
    messages_count: int
    started_at: Optional[int] = None
    updated_at: Optional[int] = None


class ConsolidateResponse(BaseModel):
    """Outcome of a consolidation run."""

    embeddings: BatchResult
    relationships: BatchResult
    bundles: List[BundleSummary]
    cancelled: bool = False
