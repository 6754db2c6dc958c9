"""
Source repository for registered export locations.
"""

import logging
from typing import List, Optional

from chatweave.core import ids
from chatweave.core.models import Source, Vendor
from .base import BaseRepository, now_ms

logger = logging.getLogger(__name__)


class SourceRepository(BaseRepository):
    """
    Repository for source operations.

    Only the label and color of a source may change after registration.
    """

    def add(
        self,
        vendor: str,
        root: str,
        label: Optional[str] = None,
        color: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> str:
        """
        Register a source (insert-or-ignore).

        Parameters
        ----------
        vendor : str
            Vendor tag
        root : str
            Export folder or file the source was read from
        label : str, optional
            Display label
        color : str, optional
            Display color
        source_id : str, optional
            Explicit id; derived from vendor and root when omitted

        Returns
        -------
        str
            Source ID (existing one if already registered)
        """
        vendor = Vendor(vendor).value
        sid = source_id or ids.source_id(vendor, root)
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute(
                """
                INSERT OR IGNORE INTO sources (id, vendor, root, label, color, added_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (sid, vendor, root or "", label, color, now_ms()),
            )
            if cursor.rowcount:
                logger.info("Registered source %s (%s)", sid, vendor)
            self.commit()
        return sid

    def get(self, source_id: str) -> Optional[Source]:
        """Get a source by ID."""
        cursor = self.cursor()
        cursor.execute("SELECT * FROM sources WHERE id = ?", (source_id,))
        row = cursor.fetchone()
        return Source(**dict(row)) if row else None

    def list(self) -> List[Source]:
        """List all sources, oldest first."""
        cursor = self.cursor()
        cursor.execute("SELECT * FROM sources ORDER BY added_at, id")
        return [Source(**dict(row)) for row in cursor.fetchall()]

    def update_label(
        self,
        source_id: str,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> bool:
        """
        Update the display label and/or color of a source.

        Returns
        -------
        bool
            True if the source exists
        """
        with self.write_lock:
            cursor = self.cursor()
            cursor.execute(
                """
                UPDATE sources
                SET label = COALESCE(?, label), color = COALESCE(?, color)
                WHERE id = ?
                """,
                (label, color, source_id),
            )
            self.commit()
            return cursor.rowcount > 0

    def count(self) -> int:
        cursor = self.cursor()
        cursor.execute("SELECT COUNT(*) FROM sources")
        return cursor.fetchone()[0]
