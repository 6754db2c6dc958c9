"""
Record store for the chat corpus.

Provides a SQLite store with dedup-safe insert semantics using a
repository pattern architecture. Writes land in an in-memory working
copy; callers bracket a batch of writes with a single save().
"""

import logging
from typing import Any, Dict, List, Optional, Pattern, Union

from chatweave.core.models import (
    Conversation,
    ConversationFields,
    Embedding,
    Message,
    Relationship,
    Source,
    StoreStats,
)
from .connection import DatabaseConnection
from .schema import SchemaManager
from .repositories.conversation import ConversationRepository
from .repositories.embedding import EmbeddingRepository
from .repositories.message import MessageRepository
from .repositories.relationship import RelationshipRepository
from .repositories.source import SourceRepository
from .repositories.topic import TopicRepository

logger = logging.getLogger(__name__)


class Database:
    """
    Main store facade combining all repositories.

    Provides a unified interface for store operations.

    Example
    -------
    >>> db = Database("corpus.db")
    >>> conv_id = db.insert_conversation({"source_id": "s1", "ext_id": "c1"})
    >>> db.insert_message(conv_id, "user", 1700000000000, "hello")
    >>> db.save()
    """

    def __init__(self, db_path: Optional[str] = None, snapshot: Optional[bytes] = None):
        """
        Open the store and ensure its schema.

        Parameters
        ----------
        db_path : str, optional
            Path to the store file. If None, uses default OS-specific location.
        snapshot : bytes, optional
            Serialized store to start from instead of the file contents.

        Raises
        ------
        StoreError
            If the store cannot be opened or is corrupt.
        """
        self.conn = DatabaseConnection(db_path, snapshot=snapshot)
        self._schema = SchemaManager(self.conn)
        self._schema.ensure()

        # Repositories
        self.sources = SourceRepository(self.conn)
        self.conversations = ConversationRepository(self.conn)
        self.messages = MessageRepository(self.conn)
        self.embeddings = EmbeddingRepository(self.conn)
        self.relationships = RelationshipRepository(self.conn)
        self.topics = TopicRepository(self.conn)

    @property
    def db_path(self) -> str:
        return self.conn.db_path

    def save(self, path: Optional[str] = None) -> None:
        """Flush the working copy to the store file."""
        self.conn.save(path)

    def export_bytes(self) -> bytes:
        """Serialize the whole store to a single blob."""
        return self.conn.export_bytes()

    def import_bytes(self, snapshot: bytes) -> None:
        """Replace the working copy with a snapshot blob."""
        self.conn.import_bytes(snapshot)
        self._schema.ensure()

    def close(self):
        """Close the store. Unsaved writes are discarded."""
        self.conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, *args):
        """Context manager exit."""
        self.close()

    # --- Source methods ---
    def add_source(
        self,
        vendor: str,
        root: str,
        label: Optional[str] = None,
        color: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> str:
        """Delegate to SourceRepository.add()."""
        return self.sources.add(vendor, root, label, color, source_id)

    def get_source(self, source_id: str) -> Optional[Source]:
        """Delegate to SourceRepository.get()."""
        return self.sources.get(source_id)

    def list_sources(self) -> List[Source]:
        """Delegate to SourceRepository.list()."""
        return self.sources.list()

    def update_source_label(
        self, source_id: str, label: Optional[str] = None, color: Optional[str] = None
    ) -> bool:
        """Delegate to SourceRepository.update_label()."""
        return self.sources.update_label(source_id, label, color)

    # --- Conversation methods ---
    def insert_conversation(
        self, fields: Union[ConversationFields, Dict[str, Any]]
    ) -> Optional[int]:
        """Delegate to ConversationRepository.insert()."""
        return self.conversations.insert(fields)

    def select_conversations(
        self,
        source: Optional[str] = None,
        title_regex: Optional[Union[str, Pattern]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Conversation]:
        """Delegate to ConversationRepository.select()."""
        return self.conversations.select(source, title_regex, limit, offset)

    def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        """Delegate to ConversationRepository.get()."""
        return self.conversations.get(conversation_id)

    def count_conversations(self, source: Optional[str] = None) -> int:
        """Delegate to ConversationRepository.count()."""
        return self.conversations.count(source)

    def touch_conversation(self, conversation_id: int, ts: int) -> None:
        """Delegate to ConversationRepository.touch()."""
        self.conversations.touch(conversation_id, ts)

    def delete_conversation(self, conversation_id: int) -> bool:
        """Delegate to ConversationRepository.delete()."""
        return self.conversations.delete(conversation_id)

    # --- Message methods ---
    def insert_message(
        self,
        conversation_id: int,
        role: str,
        ts: int,
        text: Optional[str],
        tool_json: Optional[str] = None,
        stable_id: Optional[str] = None,
    ) -> Optional[int]:
        """Delegate to MessageRepository.insert()."""
        return self.messages.insert(conversation_id, role, ts, text, tool_json, stable_id)

    def get_conversation_messages(self, conversation_id: int) -> List[Message]:
        """Delegate to MessageRepository.get_for_conversation()."""
        return self.messages.get_for_conversation(conversation_id)

    def count_messages(self, conversation_id: Optional[int] = None) -> int:
        """Delegate to MessageRepository.count()."""
        return self.messages.count(conversation_id)

    # --- Embedding methods ---
    def insert_message_embedding(self, message_id: int, vector, model_name: str) -> None:
        """Delegate to EmbeddingRepository.upsert()."""
        self.embeddings.upsert(message_id, vector, model_name)

    def get_message_embedding(
        self, message_id: int, model_name: Optional[str] = None
    ) -> Optional[Embedding]:
        """Delegate to EmbeddingRepository.get()."""
        return self.embeddings.get(message_id, model_name)

    def get_all_embeddings(self, model_name: Optional[str] = None) -> Dict[int, Embedding]:
        """Delegate to EmbeddingRepository.get_all()."""
        return self.embeddings.get_all(model_name)

    # --- Relationship methods ---
    def insert_relationship(
        self,
        conv_id_a: int,
        conv_id_b: int,
        relationship_type: str,
        similarity_score: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        """Delegate to RelationshipRepository.upsert()."""
        return self.relationships.upsert(
            conv_id_a, conv_id_b, relationship_type, similarity_score, metadata
        )

    def get_relationships_for(
        self, conversation_id: int, min_score: Optional[float] = None
    ) -> List[Relationship]:
        """Delegate to RelationshipRepository.get_for()."""
        return self.relationships.get_for(conversation_id, min_score)

    # --- Topic methods ---
    def insert_topic(self, name: str, description: Optional[str] = None) -> int:
        """Delegate to TopicRepository.insert()."""
        return self.topics.insert(name, description)

    def insert_message_topic(self, message_id: int, topic_id: int, relevance: float) -> None:
        """Delegate to TopicRepository.link_message()."""
        self.topics.link_message(message_id, topic_id, relevance)

    # --- Maintenance ---
    def clear_derived(self) -> Dict[str, int]:
        """
        Delete all derived data (embeddings, relationships, topics).

        Core tables are untouched, so everything removed here can be
        regenerated from the stored messages.

        Returns
        -------
        Dict[str, int]
            Rows removed per table
        """
        with self.conn.write_lock:
            removed = {
                "embeddings": self.embeddings.clear(),
                "relationships": self.relationships.clear(),
                "topics": self.topics.clear(),
            }
        logger.info(
            "Cleared derived data: %d embeddings, %d relationships, %d topics",
            removed["embeddings"],
            removed["relationships"],
            removed["topics"],
        )
        return removed

    def get_stats(self) -> StoreStats:
        """
        Summary counts for the store.

        Returns
        -------
        StoreStats
            total_messages, total_conversations, number of distinct sources
            with conversations, and the newest updated-at
        """
        return StoreStats(
            total_messages=self.messages.count(),
            total_conversations=self.conversations.count(),
            sources=self.conversations.count_sources(),
            last_updated=self.conversations.get_last_updated_at(),
        )


def open_store(db_path: Optional[str] = None) -> Database:
    """Open the store at db_path (default location when None)."""
    return Database(db_path)


def open_store_from_bytes(snapshot: bytes, db_path: str = ":memory:") -> Database:
    """
    Open a store from a snapshot blob.

    Parameters
    ----------
    snapshot : bytes
        Blob produced by Database.export_bytes()
    db_path : str
        Where save() writes to; memory-only by default.
    """
    return Database(db_path, snapshot=snapshot)


def close_store(db: Database) -> None:
    """Close a store opened with open_store()."""
    db.close()


__all__ = [
    # Main facade
    "Database",
    "open_store",
    "open_store_from_bytes",
    "close_store",
    # Connection/Schema
    "DatabaseConnection",
    "SchemaManager",
    # Repositories
    "SourceRepository",
    "ConversationRepository",
    "MessageRepository",
    "EmbeddingRepository",
    "RelationshipRepository",
    "TopicRepository",
]
