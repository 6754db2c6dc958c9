"""
Exception types raised by chatweave.

Dedup conflicts are not errors: the store absorbs them with
INSERT OR IGNORE and never raises for them.
"""

from typing import Optional


class ChatweaveError(Exception):
    """Base class for chatweave errors."""


class StoreError(ChatweaveError):
    """The store could not be opened, loaded or written (fatal)."""


class DecodeError(ChatweaveError):
    """A vendor export payload failed validation."""

    def __init__(self, vendor: str, message: str, native_id: Optional[str] = None):
        self.vendor = vendor
        self.native_id = native_id
        super().__init__(f"{vendor}: {message}")


class EmbeddingError(ChatweaveError):
    """The embedding provider failed to return a vector."""
