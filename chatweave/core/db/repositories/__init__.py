"""
Repository classes for the chat corpus store.
"""

from .base import BaseRepository
from .conversation import ConversationRepository
from .embedding import EmbeddingRepository
from .message import MessageRepository
from .relationship import RelationshipRepository
from .source import SourceRepository
from .topic import TopicRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "EmbeddingRepository",
    "MessageRepository",
    "RelationshipRepository",
    "SourceRepository",
    "TopicRepository",
]
