"""
Database connection management for the chat corpus store.

The store works on an in-memory SQLite copy. Writes are buffered there and
only reach disk on an explicit save(), which writes the working copy back
to the store file (WAL journal). Snapshots are the SQLite file format
itself, exported and imported as bytes.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from chatweave.core.config import get_default_db_path
from chatweave.core.errors import StoreError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class DatabaseConnection:
    """
    In-memory SQLite working copy with explicit save and snapshot support.

    Writers take ``write_lock`` so the store stays single-writer even when
    a host calls in from worker threads.
    """

    def __init__(self, db_path: Optional[str] = None, snapshot: Optional[bytes] = None):
        """
        Initialize database connection.

        Parameters
        ----------
        db_path : str, optional
            Path to the store file. If None, uses the default OS-specific
            location. ":memory:" keeps the store purely in memory.
        snapshot : bytes, optional
            Serialized store to load instead of reading db_path.

        Raises
        ------
        StoreError
            If the file or snapshot is not a readable SQLite database.
        """
        if db_path is None:
            db_path = str(get_default_db_path())

        self.db_path = str(db_path)
        self.write_lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._connect(snapshot)

    @property
    def is_memory_only(self) -> bool:
        return self.db_path == MEMORY_PATH

    def _connect(self, snapshot: Optional[bytes] = None) -> None:
        """Open the working copy and load persisted contents into it."""
        self._conn = sqlite3.connect(MEMORY_PATH, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        try:
            if snapshot is not None:
                self._conn.deserialize(snapshot)
                logger.debug("Loaded store snapshot (%d bytes)", len(snapshot))
            elif not self.is_memory_only and Path(self.db_path).exists():
                source = sqlite3.connect(self.db_path)
                try:
                    source.backup(self._conn)
                finally:
                    source.close()
                logger.debug("Loaded store file: %s", self.db_path)
            self._conn.execute("PRAGMA foreign_keys=ON")
            # Touch the schema so corrupt input fails here, not mid-session
            self._conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        except sqlite3.DatabaseError as e:
            self._conn.close()
            self._conn = None
            raise StoreError(f"Cannot open store {self.db_path}: {e}") from e

        logger.debug("Database connection established: %s", self.db_path)

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the underlying SQLite connection."""
        if self._conn is None:
            raise StoreError(f"Store is closed: {self.db_path}")
        return self._conn

    def cursor(self) -> sqlite3.Cursor:
        """Get a new cursor for the database connection."""
        return self.connection.cursor()

    def commit(self) -> None:
        """Commit the current transaction to the working copy."""
        self.connection.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self.connection.rollback()

    def save(self, path: Optional[str] = None) -> None:
        """
        Flush the working copy to durable storage.

        Parameters
        ----------
        path : str, optional
            Destination file. Defaults to the path the store was opened with.
        """
        target = str(path or self.db_path)
        if target == MEMORY_PATH:
            logger.debug("Memory-only store, nothing to save")
            return

        with self.write_lock:
            self.commit()
            Path(target).parent.mkdir(parents=True, exist_ok=True)
            try:
                dest = sqlite3.connect(target)
                try:
                    dest.execute("PRAGMA journal_mode=WAL").fetchone()
                    self.connection.backup(dest)
                    dest.execute("PRAGMA journal_mode=WAL").fetchone()
                finally:
                    dest.close()
            except sqlite3.DatabaseError as e:
                raise StoreError(f"Cannot save store to {target}: {e}") from e
        logger.info("Store saved: %s", target)

    def export_bytes(self) -> bytes:
        """Serialize the working copy to bytes (SQLite file format)."""
        with self.write_lock:
            self.commit()
            return self.connection.serialize()

    def import_bytes(self, snapshot: bytes) -> None:
        """
        Replace the working copy with a serialized snapshot.

        Raises
        ------
        StoreError
            If the snapshot is not a valid SQLite database.
        """
        with self.write_lock:
            try:
                self.connection.deserialize(snapshot)
                self.connection.execute("PRAGMA foreign_keys=ON")
                self.connection.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
            except sqlite3.DatabaseError as e:
                raise StoreError(f"Invalid store snapshot: {e}") from e
        logger.info("Store snapshot imported (%d bytes)", len(snapshot))

    def close(self) -> None:
        """Close the working copy. Unsaved writes are discarded."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("Database connection closed: %s", self.db_path)

    def __enter__(self) -> "DatabaseConnection":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close connection."""
        self.close()
