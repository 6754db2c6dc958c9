"""
Pydantic models for Claude.ai export data.

These models represent the structure of the Claude.ai data export
(conversations.json), before normalization into message records. Uses
hybrid validation: strict for critical fields, lenient for
optional/unknown fields.
"""

from enum import StrEnum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SenderRole(StrEnum):
    """Message sender role in Claude conversations."""

    HUMAN = "human"
    ASSISTANT = "assistant"


class ClaudeContentBlock(BaseModel):
    """Content block within a Claude message."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Block type: 'text', 'thinking', 'tool_use', 'tool_result', ...")
    text: Optional[str] = Field(None, description="Text content (for text blocks)")
    thinking: Optional[str] = Field(None, description="Thinking content (for thinking blocks)")
    name: Optional[str] = Field(None, description="Tool name (for tool_use blocks)")
    input: Optional[Any] = Field(None, description="Tool input (for tool_use blocks)")
    content: Optional[Any] = Field(None, description="Tool output (for tool_result blocks)")


class ClaudeMessage(BaseModel):
    """Message in a Claude conversation."""

    model_config = ConfigDict(extra="allow")

    uuid: str = Field(..., description="Unique message identifier")
    sender: SenderRole = Field(..., description="Message sender: 'human' or 'assistant'")
    text: Optional[str] = Field(None, description="Flattened message text")
    content: List[ClaudeContentBlock] = Field(
        default_factory=list, description="List of content blocks"
    )
    created_at: str = Field(..., description="ISO timestamp when message was created")
    updated_at: Optional[str] = Field(None, description="ISO timestamp when message was updated")
    attachments: Optional[List[Any]] = Field(None, description="Attached files")
    files: Optional[List[Any]] = Field(None, description="File attachments")


class ClaudeConversation(BaseModel):
    """
    Root conversation object from a Claude.ai export.

    Represents a full conversation with metadata and messages.
    """

    model_config = ConfigDict(extra="allow")

    uuid: str = Field(..., description="Unique conversation identifier")
    name: Optional[str] = Field(None, description="Auto-generated or user-set title")
    summary: Optional[str] = Field(None, description="AI-generated conversation summary")
    created_at: str = Field(..., description="ISO timestamp when conversation was created")
    updated_at: Optional[str] = Field(None, description="ISO timestamp when conversation was updated")
    chat_messages: List[ClaudeMessage] = Field(
        default_factory=list, description="List of messages in conversation"
    )
