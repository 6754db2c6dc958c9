"""
Pydantic models for Gemini (Google Takeout) conversation data.

Takeout writes one object per conversation with a ``conversationId``,
a title, a creation time and a list of events (turns).
"""

from enum import StrEnum
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class GeminiAuthor(StrEnum):
    """Author of a Gemini event."""

    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


class GeminiPart(BaseModel):
    """Text part of an event."""

    model_config = ConfigDict(extra="allow")

    text: Optional[str] = Field(None, description="Text of the part")


class GeminiEvent(BaseModel):
    """One turn in a Gemini conversation."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(None, description="Event identifier")
    author: GeminiAuthor = Field(
        ...,
        validation_alias=AliasChoices("author", "role"),
        description="'user' or 'model'",
    )
    text: Optional[str] = Field(None, description="Event text")
    parts: List[GeminiPart] = Field(default_factory=list, description="Multi-part content")
    created_time: Optional[Union[float, str]] = Field(
        None,
        validation_alias=AliasChoices("createdTime", "created_time", "timestamp"),
        description="Epoch (s or ms) or ISO timestamp",
    )


class GeminiConversation(BaseModel):
    """Root conversation object from a Gemini Takeout export."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    conversation_id: str = Field(
        ...,
        validation_alias=AliasChoices("conversationId", "conversation_id", "id"),
        description="Conversation identifier",
    )
    title: Optional[str] = Field(None, description="Conversation title")
    created_time: Union[float, str] = Field(
        ...,
        validation_alias=AliasChoices("createdTime", "created_time"),
        description="Epoch (s or ms) or ISO timestamp",
    )
    events: List[GeminiEvent] = Field(default_factory=list, description="Conversation turns")
    metadata: Optional[Any] = Field(None, description="Extra Takeout metadata")
