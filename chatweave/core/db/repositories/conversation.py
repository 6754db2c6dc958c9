"""
Conversation repository for database operations on conversations.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Pattern, Union

from pydantic import ValidationError

from chatweave.core.models import Conversation, ConversationFields
from .base import BaseRepository

logger = logging.getLogger(__name__)


class ConversationRepository(BaseRepository):
    """
    Repository for conversation operations.

    Conversations are resolved by (source_id, ext_id) first and by
    content hash when the vendor gave no usable external id.
    """

    def insert(self, fields: Union[ConversationFields, Dict[str, Any]]) -> Optional[int]:
        """
        Insert a conversation or resolve the existing row.

        Parameters
        ----------
        fields : ConversationFields or dict
            Conversation fields. Needs ``source_id`` and at least one of
            ``ext_id`` or ``content_hash``.

        Returns
        -------
        int or None
            Row ID of the new or existing conversation; None if the field
            set is malformed (logged, never raised).
        """
        try:
            if not isinstance(fields, ConversationFields):
                fields = ConversationFields.model_validate(fields)
        except ValidationError as e:
            logger.warning("Rejected malformed conversation fields: %s", e.errors())
            return None

        with self.write_lock:
            cursor = self.cursor()

            if not fields.ext_id:
                existing = self._find_by_content_hash(cursor, fields.content_hash)
                if existing is not None:
                    logger.debug("Resolved conversation %d by content hash", existing)
                    return existing

            cursor.execute(
                """
                INSERT OR IGNORE INTO conversations (ext_id, source_id, stable_id, title,
                    started_at, updated_at, raw_path, content_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    fields.ext_id,
                    fields.source_id,
                    fields.stable_id,
                    fields.title,
                    fields.started_at,
                    fields.updated_at,
                    fields.raw_path,
                    fields.content_hash,
                ),
            )
            inserted = cursor.rowcount == 1
            new_id = cursor.lastrowid
            self.commit()

            if inserted:
                logger.debug("Inserted conversation %d (%s)", new_id, fields.ext_id)
                return new_id

            cursor.execute(
                "SELECT id FROM conversations WHERE source_id = ? AND ext_id = ?",
                (fields.source_id, fields.ext_id),
            )
            row = cursor.fetchone()
            if row:
                return row[0]
            return self._find_by_content_hash(cursor, fields.content_hash)

    def _find_by_content_hash(self, cursor, content_hash: Optional[str]) -> Optional[int]:
        if not content_hash:
            return None
        cursor.execute(
            """
            SELECT id FROM conversations WHERE content_hash = ?
            ORDER BY updated_at DESC LIMIT 1
            """,
            (content_hash,),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def get(self, conversation_id: int) -> Optional[Conversation]:
        """Get a conversation by row ID."""
        cursor = self.cursor()
        cursor.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,))
        row = cursor.fetchone()
        return Conversation(**dict(row)) if row else None

    def get_by_ext_id(self, source_id: str, ext_id: str) -> Optional[Conversation]:
        """Get a conversation by its (source, external id) key."""
        cursor = self.cursor()
        cursor.execute(
            "SELECT * FROM conversations WHERE source_id = ? AND ext_id = ?",
            (source_id, ext_id),
        )
        row = cursor.fetchone()
        return Conversation(**dict(row)) if row else None

    def select(
        self,
        source: Optional[str] = None,
        title_regex: Optional[Union[str, Pattern]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Conversation]:
        """
        List conversations, most recently updated first.

        Parameters
        ----------
        source : str, optional
            Only conversations from this source ID
        title_regex : str or compiled pattern, optional
            Keep conversations whose title matches (case-insensitive when
            given as a string). An invalid pattern matches nothing.
        limit : int, optional
            Maximum number of rows
        offset : int
            Rows to skip

        Returns
        -------
        List[Conversation]
            Matching conversations
        """
        pattern = None
        if title_regex is not None:
            if isinstance(title_regex, str):
                try:
                    pattern = re.compile(title_regex, re.IGNORECASE)
                except re.error as e:
                    logger.warning("Invalid title regex %r: %s", title_regex, e)
                    return []
            else:
                pattern = title_regex

        query = "SELECT * FROM conversations"
        params: List[Any] = []
        if source:
            query += " WHERE source_id = ?"
            params.append(source)
        query += " ORDER BY updated_at DESC, id DESC"

        cursor = self.cursor()
        cursor.execute(query, params)
        rows = [Conversation(**dict(row)) for row in cursor.fetchall()]
        if pattern is not None:
            rows = [r for r in rows if pattern.search(r.title or "")]

        if limit is not None:
            return rows[offset : offset + limit]
        return rows[offset:]

    def count(self, source: Optional[str] = None) -> int:
        """Count conversations, optionally for one source."""
        cursor = self.cursor()
        if source:
            cursor.execute("SELECT COUNT(*) FROM conversations WHERE source_id = ?", (source,))
        else:
            cursor.execute("SELECT COUNT(*) FROM conversations")
        return cursor.fetchone()[0]

    def count_sources(self) -> int:
        """Number of distinct sources that own at least one conversation."""
        cursor = self.cursor()
        cursor.execute("SELECT COUNT(DISTINCT source_id) FROM conversations")
        return cursor.fetchone()[0]

    def get_last_updated_at(self) -> Optional[int]:
        """Newest conversation updated-at, in epoch ms."""
        cursor = self.cursor()
        cursor.execute("SELECT MAX(updated_at) FROM conversations")
        row = cursor.fetchone()
        return row[0] if row else None

    def touch(self, conversation_id: int, ts: int) -> None:
        """Widen the conversation time span to include ts.

        updated_at only ever moves forward and started_at only backward.
        """
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute(
                """
                UPDATE conversations
                SET updated_at = MAX(COALESCE(updated_at, 0), ?),
                    started_at = MIN(COALESCE(started_at, ?), ?)
                WHERE id = ?
                """,
                (ts, ts, ts, conversation_id),
            )
            self.commit()

    def delete(self, conversation_id: int) -> bool:
        """
        Delete a conversation and everything hanging off it.

        Messages, embeddings, topic links and relationships cascade.

        Returns
        -------
        bool
            True if a row was deleted
        """
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            self.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted conversation %d", conversation_id)
        return deleted
