"""
Message repository for database operations on messages.
"""

import logging
import sqlite3
from typing import List, Optional

from chatweave.core import ids
from chatweave.core.models import Message, MessageRole
from .base import BaseRepository

logger = logging.getLogger(__name__)


class MessageRepository(BaseRepository):
    """
    Repository for message operations.

    Messages are append-only. The (conversation_id, ts, role, hash)
    uniqueness constraint turns re-inserts into no-ops.
    """

    def insert(
        self,
        conversation_id: int,
        role: str,
        ts: int,
        text: Optional[str],
        tool_json: Optional[str] = None,
        stable_id: Optional[str] = None,
    ) -> Optional[int]:
        """
        Insert a message unless an identical one is already stored.

        Parameters
        ----------
        conversation_id : int
            Owning conversation row ID
        role : str
            Message role (user, assistant, tool, system)
        ts : int
            Timestamp in epoch ms
        text : str, optional
            Message text
        tool_json : str, optional
            Serialized tool payload
        stable_id : str, optional
            Stable message id (see ids.message_id)

        Returns
        -------
        int or None
            Row ID of the new message, or None when it was a duplicate or
            could not be stored.
        """
        try:
            role = MessageRole(role).value
        except ValueError:
            logger.warning("Skipping message with unknown role %r", role)
            return None

        text = text or ""
        digest = ids.message_hash(role, ts, text)

        with self.write_lock:
            cursor = self.cursor()
            try:
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO messages (conversation_id, stable_id, role, ts,
                        text, tool_json, hash)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (conversation_id, stable_id, role, int(ts), text, tool_json, digest),
                )
            except sqlite3.IntegrityError as e:
                # Only a missing conversation can get here; duplicates are ignored
                logger.warning(
                    "Skipping message for unknown conversation %s: %s", conversation_id, e
                )
                self.rollback()
                return None
            self.commit()

            if cursor.rowcount == 1:
                return cursor.lastrowid
        logger.debug("Duplicate message ignored in conversation %d", conversation_id)
        return None

    def get(self, message_id: int) -> Optional[Message]:
        """Get a message by row ID."""
        cursor = self.cursor()
        cursor.execute("SELECT * FROM messages WHERE id = ?", (message_id,))
        row = cursor.fetchone()
        return Message(**dict(row)) if row else None

    def get_for_conversation(self, conversation_id: int) -> List[Message]:
        """
        Get all messages of a conversation in timestamp order.

        Ties on timestamp keep insertion order.
        """
        cursor = self.cursor()
        cursor.execute(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY ts ASC, id ASC",
            (conversation_id,),
        )
        return [Message(**dict(row)) for row in cursor.fetchall()]

    def list_all(self) -> List[Message]:
        """All messages, grouped by conversation and in timestamp order."""
        cursor = self.cursor()
        cursor.execute("SELECT * FROM messages ORDER BY conversation_id, ts, id")
        return [Message(**dict(row)) for row in cursor.fetchall()]

    def list_without_embedding(self, model_name: str) -> List[Message]:
        """Messages that have no stored embedding for model_name."""
        cursor = self.cursor()
        cursor.execute(
            """
            SELECT m.* FROM messages m
            LEFT JOIN message_embeddings e
                ON e.message_id = m.id AND e.model_name = ?
            WHERE e.message_id IS NULL
            ORDER BY m.conversation_id, m.ts, m.id
            """,
            (model_name,),
        )
        return [Message(**dict(row)) for row in cursor.fetchall()]

    def count(self, conversation_id: Optional[int] = None) -> int:
        """Count messages, optionally within one conversation."""
        cursor = self.cursor()
        if conversation_id is not None:
            cursor.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
        else:
            cursor.execute("SELECT COUNT(*) FROM messages")
        return cursor.fetchone()[0]
