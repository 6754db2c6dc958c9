"""
Topic repository for topic labels and message-topic links.
"""

from typing import Dict, List, Optional

from chatweave.core.models import MessageTopic, Topic
from .base import BaseRepository, now_ms


class TopicRepository(BaseRepository):
    """
    Repository for topic operations.

    Topic names are unique; inserting an existing name returns its ID.
    """

    def insert(self, name: str, description: Optional[str] = None) -> int:
        """
        Insert a topic (insert-or-ignore on name).

        Parameters
        ----------
        name : str
            Topic name
        description : str, optional
            Free-form description

        Returns
        -------
        int
            Topic ID
        """
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO topics (name, description, created_at) VALUES (?, ?, ?)",
                (name, description, now_ms()),
            )
            cursor.execute("SELECT id FROM topics WHERE name = ?", (name,))
            topic_id = cursor.fetchone()[0]
            self.commit()
        return topic_id

    def link_message(self, message_id: int, topic_id: int, relevance: float) -> None:
        """Link a message to a topic, replacing any previous relevance."""
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO message_topics (message_id, topic_id, relevance)
                VALUES (?, ?, ?)
                """,
                (message_id, topic_id, float(relevance)),
            )
            self.commit()

    def get(self, topic_id: int) -> Optional[Topic]:
        cursor = self.cursor()
        cursor.execute("SELECT * FROM topics WHERE id = ?", (topic_id,))
        row = cursor.fetchone()
        return Topic(**dict(row)) if row else None

    def get_by_name(self, name: str) -> Optional[Topic]:
        cursor = self.cursor()
        cursor.execute("SELECT * FROM topics WHERE name = ?", (name,))
        row = cursor.fetchone()
        return Topic(**dict(row)) if row else None

    def list(self) -> List[Topic]:
        """All topics by name."""
        cursor = self.cursor()
        cursor.execute("SELECT * FROM topics ORDER BY name")
        return [Topic(**dict(row)) for row in cursor.fetchall()]

    def get_for_message(self, message_id: int) -> List[MessageTopic]:
        """Topic links of a message, most relevant first."""
        cursor = self.cursor()
        cursor.execute(
            """
            SELECT * FROM message_topics WHERE message_id = ?
            ORDER BY relevance DESC, topic_id ASC
            """,
            (message_id,),
        )
        return [MessageTopic(**dict(row)) for row in cursor.fetchall()]

    def get_counts(self) -> Dict[str, int]:
        """
        Number of linked messages per topic.

        Returns
        -------
        Dict[str, int]
            Topic name to message count, most linked first
        """
        cursor = self.cursor()
        cursor.execute(
            """
            SELECT t.name, COUNT(mt.message_id) AS n
            FROM topics t
            LEFT JOIN message_topics mt ON mt.topic_id = t.id
            GROUP BY t.id
            ORDER BY n DESC, t.name ASC
            """
        )
        return {row[0]: row[1] for row in cursor.fetchall()}

    def clear(self) -> int:
        """Delete all topics and their message links."""
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute("DELETE FROM message_topics")
            cursor.execute("DELETE FROM topics")
            self.commit()
            return cursor.rowcount
