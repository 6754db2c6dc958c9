"""
Embedding repository for per-message vectors.

Vectors are stored as float32 blobs alongside their dimension and the
model that produced them. They are derived data: losing them is
recoverable by recomputation.
"""

import logging
import sqlite3
from typing import Dict, List, Optional

import numpy as np

from chatweave.core.models import Embedding
from .base import BaseRepository, now_ms

logger = logging.getLogger(__name__)


def _row_to_embedding(row: sqlite3.Row) -> Embedding:
    vector = np.frombuffer(row["embedding"], dtype=np.float32).copy()
    vector.setflags(write=False)
    return Embedding(
        message_id=row["message_id"],
        model_name=row["model_name"],
        vector=vector,
        dimension=row["dimension"],
        created_at=row["created_at"],
    )


class EmbeddingRepository(BaseRepository):
    """Repository for message embedding operations."""

    def upsert(self, message_id: int, vector, model_name: str) -> None:
        """
        Store the embedding of a message, replacing any previous one.

        Parameters
        ----------
        message_id : int
            Message row ID
        vector : array-like
            Embedding vector
        model_name : str
            Model that produced the vector
        """
        array = np.asarray(vector, dtype=np.float32).ravel()
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO message_embeddings
                (message_id, model_name, embedding, dimension, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (message_id, model_name, array.tobytes(), int(array.shape[0]), now_ms()),
            )
            self.commit()

    def get(self, message_id: int, model_name: Optional[str] = None) -> Optional[Embedding]:
        """
        Get the embedding of a message.

        Without model_name the most recently written one is returned.
        """
        cursor = self.cursor()
        if model_name:
            cursor.execute(
                "SELECT * FROM message_embeddings WHERE message_id = ? AND model_name = ?",
                (message_id, model_name),
            )
        else:
            cursor.execute(
                """
                SELECT * FROM message_embeddings WHERE message_id = ?
                ORDER BY created_at DESC LIMIT 1
                """,
                (message_id,),
            )
        row = cursor.fetchone()
        return _row_to_embedding(row) if row else None

    def get_all(self, model_name: Optional[str] = None) -> Dict[int, Embedding]:
        """
        All stored embeddings keyed by message ID.

        When several models embedded the same message and no model_name is
        given, the newest vector wins.
        """
        cursor = self.cursor()
        if model_name:
            cursor.execute(
                "SELECT * FROM message_embeddings WHERE model_name = ?", (model_name,)
            )
        else:
            cursor.execute("SELECT * FROM message_embeddings ORDER BY created_at ASC")
        return {row["message_id"]: _row_to_embedding(row) for row in cursor.fetchall()}

    def get_for_conversation(
        self, conversation_id: int, model_name: Optional[str] = None
    ) -> List[Embedding]:
        """Embeddings of one conversation's messages, in message order."""
        query = """
            SELECT e.* FROM message_embeddings e
            JOIN messages m ON m.id = e.message_id
            WHERE m.conversation_id = ?
        """
        params: list = [conversation_id]
        if model_name:
            query += " AND e.model_name = ?"
            params.append(model_name)
        query += " ORDER BY m.ts, m.id, e.created_at"

        cursor = self.cursor()
        cursor.execute(query, params)
        latest: Dict[int, Embedding] = {}
        for row in cursor.fetchall():
            latest[row["message_id"]] = _row_to_embedding(row)
        return list(latest.values())

    def count(self, model_name: Optional[str] = None) -> int:
        cursor = self.cursor()
        if model_name:
            cursor.execute(
                "SELECT COUNT(*) FROM message_embeddings WHERE model_name = ?", (model_name,)
            )
        else:
            cursor.execute("SELECT COUNT(*) FROM message_embeddings")
        return cursor.fetchone()[0]

    def clear(self) -> int:
        """Delete all embeddings. Returns the number of rows removed."""
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute("DELETE FROM message_embeddings")
            self.commit()
            return cursor.rowcount
