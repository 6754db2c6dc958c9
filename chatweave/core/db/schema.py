"""
Database schema management for the chat corpus store.

Provides SchemaManager class that handles table creation and indexes.
Uniqueness constraints here are what make re-ingestion idempotent; the
repositories rely on them with INSERT OR IGNORE.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .connection import DatabaseConnection

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class SchemaManager:
    """
    Manages database schema creation.

    This class handles:
    - Core tables (sources, conversations, messages)
    - Derived tables (embeddings, relationships, topics)
    - Index creation
    """

    def __init__(self, conn: "DatabaseConnection"):
        """
        Initialize schema manager.

        Parameters
        ----------
        conn : DatabaseConnection
            Database connection to use for schema operations.
        """
        self._conn = conn

    def ensure(self) -> None:
        """Ensure all database schema exists and is up to date."""
        with self._conn.write_lock:
            cursor = self._conn.cursor()

            # Core tables
            self._create_sources_table(cursor)
            self._create_conversations_table(cursor)
            self._create_messages_table(cursor)

            # Derived (rebuildable) tables
            self._create_embeddings_table(cursor)
            self._create_relationships_table(cursor)
            self._create_topics_table(cursor)
            self._create_message_topics_table(cursor)

            self._create_indexes(cursor)

            cursor.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            self._conn.commit()
        logger.debug("Database schema initialized at %s", self._conn.db_path)

    def _create_sources_table(self, cursor) -> None:
        """Create sources table (registered export locations)."""
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sources (
                id TEXT PRIMARY KEY,
                vendor TEXT NOT NULL,
                root TEXT NOT NULL DEFAULT '',
                label TEXT,
                color TEXT,
                added_at INTEGER NOT NULL
            )
        """)

    def _create_conversations_table(self, cursor) -> None:
        """Create conversations table."""
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ext_id TEXT,
                source_id TEXT NOT NULL,
                stable_id TEXT,
                title TEXT,
                started_at INTEGER,
                updated_at INTEGER,
                raw_path TEXT,
                content_hash TEXT,
                UNIQUE (source_id, ext_id)
            )
        """)

    def _create_messages_table(self, cursor) -> None:
        """Create messages table."""
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id INTEGER NOT NULL,
                stable_id TEXT,
                role TEXT NOT NULL,
                ts INTEGER NOT NULL,
                text TEXT,
                tool_json TEXT,
                hash TEXT NOT NULL,
                UNIQUE (conversation_id, ts, role, hash),
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)

    def _create_embeddings_table(self, cursor) -> None:
        """Create message embeddings table (float32 blobs, one per model)."""
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS message_embeddings (
                message_id INTEGER NOT NULL,
                model_name TEXT NOT NULL,
                embedding BLOB NOT NULL,
                dimension INTEGER NOT NULL,
                created_at INTEGER NOT NULL,
                PRIMARY KEY (message_id, model_name),
                FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE
            )
        """)

    def _create_relationships_table(self, cursor) -> None:
        """Create conversation relationships table (pair stored low id first)."""
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversation_relationships (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conv_id_1 INTEGER NOT NULL,
                conv_id_2 INTEGER NOT NULL,
                relationship_type TEXT NOT NULL,
                similarity_score REAL NOT NULL,
                metadata TEXT,
                created_at INTEGER NOT NULL,
                UNIQUE (conv_id_1, conv_id_2, relationship_type),
                CHECK (conv_id_1 < conv_id_2),
                FOREIGN KEY (conv_id_1) REFERENCES conversations(id) ON DELETE CASCADE,
                FOREIGN KEY (conv_id_2) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)

    def _create_topics_table(self, cursor) -> None:
        """Create topics table."""
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS topics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL,
                description TEXT,
                created_at INTEGER NOT NULL
            )
        """)

    def _create_message_topics_table(self, cursor) -> None:
        """Create message-topic join table."""
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS message_topics (
                message_id INTEGER NOT NULL,
                topic_id INTEGER NOT NULL,
                relevance REAL NOT NULL,
                PRIMARY KEY (message_id, topic_id),
                FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE,
                FOREIGN KEY (topic_id) REFERENCES topics(id) ON DELETE CASCADE
            )
        """)

    def _create_indexes(self, cursor) -> None:
        """Create performance indexes."""
        indexes = [
            ("idx_conversations_updated", "conversations", "updated_at"),
            ("idx_conversations_content_hash", "conversations", "content_hash"),
            ("idx_conversations_stable_id", "conversations", "stable_id"),
            ("idx_messages_conversation", "messages", "conversation_id"),
            ("idx_messages_ts", "messages", "ts"),
            ("idx_relationships_conv2", "conversation_relationships", "conv_id_2"),
            ("idx_message_topics_topic", "message_topics", "topic_id"),
        ]

        for idx_name, table, column in indexes:
            cursor.execute(
                f"CREATE INDEX IF NOT EXISTS {idx_name} ON {table}({column})"
            )
