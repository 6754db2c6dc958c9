"""
Pydantic models for Grok export data.

A Grok export item pairs a ``conversation`` header with its list of
``responses``. Timestamps come either as ISO strings, epoch numbers or
Mongo-style ``{"$date": {"$numberLong": "..."}}`` objects.
"""

from enum import StrEnum
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class GrokSender(StrEnum):
    """Sender of a Grok response."""

    HUMAN = "human"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class GrokResponseBody(BaseModel):
    """A single turn."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    response_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("_id", "responseId", "response_id", "id"),
        description="Response identifier",
    )
    message: str = Field(..., description="Turn text")
    sender: GrokSender = Field(..., description="'human' or 'assistant' (case-insensitive)")
    create_time: Any = Field(
        None,
        validation_alias=AliasChoices("create_time", "createTime"),
        description="Timestamp in any supported shape",
    )
    model: Optional[str] = Field(None, description="Model that answered")

    @field_validator("sender", mode="before")
    @classmethod
    def _lower_sender(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class GrokResponse(BaseModel):
    """Wrapper around a response body."""

    model_config = ConfigDict(extra="allow")

    response: GrokResponseBody


class GrokConversationHeader(BaseModel):
    """Conversation metadata."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(
        ...,
        validation_alias=AliasChoices("id", "conversationId", "conversation_id"),
        description="Conversation identifier",
    )
    title: Optional[str] = Field(None, description="Conversation title")
    create_time: Any = Field(
        ...,
        validation_alias=AliasChoices("create_time", "createTime"),
        description="Timestamp in any supported shape",
    )


class GrokConversation(BaseModel):
    """Root export item: header plus responses."""

    model_config = ConfigDict(extra="allow")

    conversation: GrokConversationHeader
    responses: List[GrokResponse] = Field(default_factory=list)
