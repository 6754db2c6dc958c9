"""
Relationship repository for similarity edges between conversations.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from chatweave.core.models import Relationship, RelationshipType
from .base import BaseRepository, now_ms

logger = logging.getLogger(__name__)


def _row_to_relationship(row) -> Relationship:
    data = dict(row)
    data["metadata"] = json.loads(data["metadata"]) if data.get("metadata") else {}
    return Relationship(**data)


class RelationshipRepository(BaseRepository):
    """
    Repository for conversation relationship operations.

    A pair is stored once per type with the lower conversation ID first,
    and matched from either side when queried.
    """

    def upsert(
        self,
        conv_id_a: int,
        conv_id_b: int,
        relationship_type: str,
        similarity_score: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        """
        Insert or update the relationship between two conversations.

        Parameters
        ----------
        conv_id_a, conv_id_b : int
            Conversation row IDs, in any order
        relationship_type : str
            One of RelationshipType
        similarity_score : float
            Cosine similarity of the two conversations
        metadata : dict, optional
            Extra JSON-serializable details

        Returns
        -------
        int or None
            Relationship row ID; None for a self-relationship
        """
        if conv_id_a == conv_id_b:
            logger.warning("Ignoring self-relationship on conversation %d", conv_id_a)
            return None

        rel_type = RelationshipType(relationship_type).value
        low, high = sorted((conv_id_a, conv_id_b))
        meta_json = json.dumps(metadata, sort_keys=True) if metadata else None

        with self.write_lock:
            cursor = self.cursor()
            cursor.execute(
                """
                INSERT INTO conversation_relationships
                    (conv_id_1, conv_id_2, relationship_type, similarity_score, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (conv_id_1, conv_id_2, relationship_type) DO UPDATE SET
                    similarity_score = excluded.similarity_score,
                    metadata = excluded.metadata
                """,
                (low, high, rel_type, float(similarity_score), meta_json, now_ms()),
            )
            cursor.execute(
                """
                SELECT id FROM conversation_relationships
                WHERE conv_id_1 = ? AND conv_id_2 = ? AND relationship_type = ?
                """,
                (low, high, rel_type),
            )
            rel_id = cursor.fetchone()[0]
            self.commit()
        return rel_id

    def get_for(
        self,
        conversation_id: int,
        min_score: Optional[float] = None,
        relationship_type: Optional[str] = None,
    ) -> List[Relationship]:
        """
        Relationships touching a conversation, most similar first.

        Parameters
        ----------
        conversation_id : int
            Conversation row ID (matched on either side)
        min_score : float, optional
            Only edges with at least this similarity
        relationship_type : str, optional
            Only edges of this type
        """
        query = """
            SELECT * FROM conversation_relationships
            WHERE (conv_id_1 = ? OR conv_id_2 = ?)
        """
        params: List[Any] = [conversation_id, conversation_id]
        if min_score is not None:
            query += " AND similarity_score >= ?"
            params.append(min_score)
        if relationship_type:
            query += " AND relationship_type = ?"
            params.append(RelationshipType(relationship_type).value)
        query += " ORDER BY similarity_score DESC, id ASC"

        cursor = self.cursor()
        cursor.execute(query, params)
        return [_row_to_relationship(row) for row in cursor.fetchall()]

    def list_all(self) -> List[Relationship]:
        """All relationships in key order."""
        cursor = self.cursor()
        cursor.execute(
            """
            SELECT * FROM conversation_relationships
            ORDER BY conv_id_1, conv_id_2, relationship_type
            """
        )
        return [_row_to_relationship(row) for row in cursor.fetchall()]

    def count(self) -> int:
        cursor = self.cursor()
        cursor.execute("SELECT COUNT(*) FROM conversation_relationships")
        return cursor.fetchone()[0]

    def clear(self) -> int:
        """Delete all relationships. Returns the number of rows removed."""
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute("DELETE FROM conversation_relationships")
            self.commit()
            return cursor.rowcount
