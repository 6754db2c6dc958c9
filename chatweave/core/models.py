"""
Domain models for the chat corpus.

Rows returned by the store are frozen Pydantic models: callers never
mutate them in place, all changes go through the repositories.
Timestamps are integer epoch milliseconds throughout.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Vendor(str, Enum):
    """Chat export vendors."""

    CHATGPT = "chatgpt"
    CLAUDE = "claude"
    GEMINI = "gemini"
    GROK = "grok"


class MessageRole(str, Enum):
    """Message role types."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class RelationshipType(str, Enum):
    """
    Relationship edge types.

    Only SIMILAR and RELATED are produced by similarity classification;
    FOLLOWUP and REFERENCE can be stored but are never inferred.
    """

    SIMILAR = "similar"
    RELATED = "related"
    FOLLOWUP = "followup"
    REFERENCE = "reference"


_FROZEN = ConfigDict(frozen=True)


class Source(BaseModel):
    """A registered export location."""

    model_config = _FROZEN

    id: str
    vendor: Vendor
    root: str = ""
    label: Optional[str] = None
    color: Optional[str] = None
    added_at: int


class Conversation(BaseModel):
    """One chat thread."""

    model_config = _FROZEN

    id: int
    ext_id: Optional[str] = None
    source_id: str
    stable_id: Optional[str] = None
    title: Optional[str] = None
    started_at: Optional[int] = None
    updated_at: Optional[int] = None
    raw_path: Optional[str] = None
    content_hash: Optional[str] = None


class Message(BaseModel):
    """One turn within a conversation."""

    model_config = _FROZEN

    id: int
    conversation_id: int
    stable_id: Optional[str] = None
    role: MessageRole
    ts: int
    text: str = ""
    tool_json: Optional[str] = None
    hash: str


class Embedding(BaseModel):
    """A stored message vector."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    message_id: int
    model_name: str
    vector: np.ndarray
    dimension: int
    created_at: int


class Relationship(BaseModel):
    """A similarity-classified edge between two conversations."""

    model_config = _FROZEN

    id: int
    conv_id_1: int
    conv_id_2: int
    relationship_type: RelationshipType
    similarity_score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: int

    def other(self, conv_id: int) -> int:
        """Return the conversation on the far side of the edge."""
        return self.conv_id_2 if self.conv_id_1 == conv_id else self.conv_id_1


class Topic(BaseModel):
    """A named cluster label."""

    model_config = _FROZEN

    id: int
    name: str
    description: Optional[str] = None
    created_at: int


class MessageTopic(BaseModel):
    """Message-to-topic link with a relevance score."""

    model_config = _FROZEN

    message_id: int
    topic_id: int
    relevance: float


class StoreStats(BaseModel):
    """Summary counts for the store."""

    model_config = _FROZEN

    total_messages: int
    total_conversations: int
    sources: int
    last_updated: Optional[int] = None


class ConversationFields(BaseModel):
    """
    Input field set for inserting a conversation.

    Either ext_id or content_hash is required; without one of them the
    row could never be resolved again on re-import.
    """

    model_config = ConfigDict(extra="forbid")

    source_id: str = Field(..., min_length=1)
    ext_id: Optional[str] = None
    stable_id: Optional[str] = None
    title: Optional[str] = None
    started_at: Optional[int] = None
    updated_at: Optional[int] = None
    raw_path: Optional[str] = None
    content_hash: Optional[str] = None

    @model_validator(mode="after")
    def _require_identity(self) -> "ConversationFields":
        if not self.ext_id and not self.content_hash:
            raise ValueError("either ext_id or content_hash is required")
        return self


class NormalizedRecord(BaseModel):
    """
    One normalized message record at the ingestion boundary.

    Produced by vendor transformers (or any external parser); accepts the
    camelCase field names of the interchange format as well as snake_case.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    vendor: Vendor
    source_id: str = Field(..., alias="sourceId", min_length=1)
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    role: MessageRole
    created_at: int = Field(..., alias="createdAt", ge=0)
    title: Optional[str] = None
    text: str
    tool_name: Optional[str] = Field(None, alias="toolName")
    tool_json: Optional[str] = Field(None, alias="toolJson")
    raw_path: Optional[str] = Field(None, alias="rawPath")

    @field_validator("conversation_id")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class IngestionError(BaseModel):
    """A record skipped during a batch operation."""

    source: str
    message: str
    timestamp: int


class IngestionResult(BaseModel):
    """Outcome of an ingestion batch."""

    records: int = 0
    conversations: int = 0
    conversations_created: int = 0
    messages_inserted: int = 0
    messages_skipped: int = 0
    likely_duplicates: int = 0
    errors: List[IngestionError] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Outcome of a long-running consolidation step."""

    processed: int = 0
    succeeded: int = 0
    errors: List[IngestionError] = Field(default_factory=list)
    cancelled: bool = False


class BundleMessage(BaseModel):
    """A message as carried inside a consolidated bundle."""

    model_config = _FROZEN

    message_id: int
    conversation_id: int
    source_id: str
    vendor: Optional[Vendor] = None
    role: MessageRole
    created_at: int
    title: str = ""
    text: str = ""


class ConsolidatedBundle(BaseModel):
    """Related conversations folded into one context bundle."""

    model_config = _FROZEN

    id: str
    title: str
    conversation_ids: List[int]
    sources: List[str]
    messages: List[BundleMessage]
    related_conversations: List[int]
    topics: List[str]
    started_at: Optional[int] = None
    updated_at: Optional[int] = None


class MasterBuildResult(BaseModel):
    """Outcome of a full consolidation run (embeddings, graph, bundles)."""

    embeddings: BatchResult = Field(default_factory=BatchResult)
    relationships: BatchResult = Field(default_factory=BatchResult)
    bundles: List[ConsolidatedBundle] = Field(default_factory=list)
    cancelled: bool = False
