"""
Source schema models for ingestion.

These Pydantic models represent the raw data structures of each vendor's
export before normalization into message records.
"""

from .chatgpt import (
    AuthorRole,
    ChatGPTAuthor,
    ChatGPTContent,
    ChatGPTConversation,
    ChatGPTMessage,
    ChatGPTNode,
)
from .claude import (
    ClaudeContentBlock,
    ClaudeConversation,
    ClaudeMessage,
    SenderRole,
)
from .gemini import (
    GeminiAuthor,
    GeminiConversation,
    GeminiEvent,
    GeminiPart,
)
from .grok import (
    GrokConversation,
    GrokConversationHeader,
    GrokResponse,
    GrokResponseBody,
    GrokSender,
)

__all__ = [
    # ChatGPT models
    "AuthorRole",
    "ChatGPTAuthor",
    "ChatGPTContent",
    "ChatGPTConversation",
    "ChatGPTMessage",
    "ChatGPTNode",
    # Claude models
    "ClaudeContentBlock",
    "ClaudeConversation",
    "ClaudeMessage",
    "SenderRole",
    # Gemini models
    "GeminiAuthor",
    "GeminiConversation",
    "GeminiEvent",
    "GeminiPart",
    # Grok models
    "GrokConversation",
    "GrokConversationHeader",
    "GrokResponse",
    "GrokResponseBody",
    "GrokSender",
]
