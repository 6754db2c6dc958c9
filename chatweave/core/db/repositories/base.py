"""
Base repository class providing common database operations.
"""

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..connection import DatabaseConnection


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class BaseRepository:
    """
    Base class for all repository implementations.

    Provides common database access patterns and utilities. Mutating
    methods hold ``write_lock`` for the duration of the statement and
    its commit.
    """

    def __init__(self, conn: "DatabaseConnection"):
        """
        Initialize repository with database connection.

        Parameters
        ----------
        conn : DatabaseConnection
            Database connection to use for operations.
        """
        self._conn = conn

    @property
    def write_lock(self):
        return self._conn.write_lock

    def cursor(self):
        """Get a new cursor for database operations."""
        return self._conn.cursor()

    def commit(self) -> None:
        """Commit the current transaction."""
        self._conn.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self._conn.rollback()
