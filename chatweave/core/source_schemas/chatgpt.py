"""
Pydantic models for ChatGPT export data.

These models represent the structure of ChatGPT's data export
(conversations.json), before normalization into message records. Uses
hybrid validation: strict for the fields a record needs, lenient for
optional/unknown fields.
"""

from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Root placeholder some exports use as the parent of the first node
ROOT_PARENT_ID = "00000000-0000-4000-8000-000000000000"


class AuthorRole(StrEnum):
    """Author role in ChatGPT messages."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ChatGPTAuthor(BaseModel):
    """Author information for a ChatGPT message."""

    model_config = ConfigDict(extra="allow")

    role: AuthorRole = Field(..., description="Author role: 'user', 'assistant', 'system' or 'tool'")
    name: Optional[str] = Field(None, description="Tool name for tool messages, usually null otherwise")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Author metadata")


class ChatGPTContent(BaseModel):
    """Content object for a ChatGPT message."""

    model_config = ConfigDict(extra="allow")

    content_type: str = Field(..., description="Content type ('text', 'code', 'multimodal_text', ...)")
    parts: List[Any] = Field(
        default_factory=list, description="Content parts (strings, or dicts for multimodal)"
    )
    text: Optional[str] = Field(None, description="Body of 'code' and similar content types")


class ChatGPTMessage(BaseModel):
    """Message object within a ChatGPT node."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Message UUID (usually same as node ID)")
    author: ChatGPTAuthor = Field(..., description="Author information")
    create_time: Optional[float] = Field(None, description="Unix timestamp when message was created")
    update_time: Optional[float] = Field(None, description="Unix timestamp when message was updated")
    content: ChatGPTContent = Field(..., description="Content object")
    status: Optional[str] = Field(None, description="Message status (e.g., 'finished_successfully')")
    weight: Optional[float] = Field(None, description="Branch weight (0 for hidden messages)")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Additional metadata")
    recipient: Optional[str] = Field(None, description="Recipient (usually 'all')")


class ChatGPTNode(BaseModel):
    """
    Node in ChatGPT's message tree structure.

    ChatGPT uses a tree to support branching conversations where users
    can branch off from earlier messages.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Node UUID (same as the mapping key)")
    parent: Optional[str] = Field(None, description="Parent node ID (null for root nodes)")
    children: List[str] = Field(default_factory=list, description="List of child node IDs")
    message: Optional[ChatGPTMessage] = Field(
        None, description="Message object (null for container nodes)"
    )


class ChatGPTConversation(BaseModel):
    """
    Root conversation object from a ChatGPT export.

    Older exports only carry ``id``; newer ones add ``conversation_id``.
    One of them is required.
    """

    model_config = ConfigDict(extra="allow")

    conversation_id: Optional[str] = Field(None, description="Conversation UUID")
    id: Optional[str] = Field(None, description="Same as conversation_id")
    title: Optional[str] = Field(None, description="Conversation title")
    create_time: float = Field(
        ..., description="Unix timestamp (seconds since epoch) when conversation was created"
    )
    update_time: Optional[float] = Field(None, description="Unix timestamp of last update")
    current_node: Optional[str] = Field(None, description="UUID of the current/latest message node")
    mapping: Dict[str, ChatGPTNode] = Field(
        ..., description="Message tree structure (key: node ID, value: node object)"
    )
    default_model_slug: Optional[str] = Field(None, description="Model used (e.g., 'gpt-4o')")
    is_archived: Optional[bool] = Field(None, description="Whether conversation is archived")

    @model_validator(mode="after")
    def _require_id(self) -> "ChatGPTConversation":
        if not (self.conversation_id or self.id):
            raise ValueError("conversation has neither 'conversation_id' nor 'id'")
        return self

    @property
    def native_id(self) -> str:
        return self.conversation_id or self.id
