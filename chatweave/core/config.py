"""
Configuration for chatweave.

Resolves the default database location per operating system and reads
embedding-provider settings from the environment.
"""

import os
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

APP_NAME = "chatweave"
DB_FILENAME = "chatweave.db"

DB_PATH_ENV = "CHATWEAVE_DB_PATH"
EMBED_PROVIDER_ENV = "CHATWEAVE_EMBED_PROVIDER"
EMBED_URL_ENV = "CHATWEAVE_EMBED_URL"
EMBED_MODEL_ENV = "CHATWEAVE_EMBED_MODEL"
EMBED_TIMEOUT_ENV = "CHATWEAVE_EMBED_TIMEOUT"

DEFAULT_PROVIDER_URLS = {
    "ollama": "http://localhost:11434",
    "lmstudio": "http://localhost:1234",
}
DEFAULT_EMBED_MODELS = {
    "ollama": "nomic-embed-text",
    "lmstudio": "text-embedding-nomic-embed-text-v1.5",
    "sentence-transformers": "all-MiniLM-L6-v2",
}


def get_data_dir() -> Path:
    """
    Get the OS-specific data directory for chatweave.

    Returns
    -------
    Path
        macOS: ~/Library/Application Support/chatweave
        Windows: %APPDATA%/chatweave
        Other: $XDG_DATA_HOME/chatweave or ~/.local/share/chatweave
    """
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / APP_NAME
    if sys.platform.startswith("win"):
        appdata = os.getenv("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / APP_NAME
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else home / ".local" / "share"
    return base / APP_NAME


def get_default_db_path() -> Path:
    """
    Get the database path, honouring CHATWEAVE_DB_PATH.

    Returns
    -------
    Path
        Path to the SQLite store file
    """
    override = os.getenv(DB_PATH_ENV)
    if override:
        return Path(override)
    return get_data_dir() / DB_FILENAME


class EmbeddingSettings(BaseModel):
    """Embedding provider settings."""

    provider: str = Field(default="ollama")
    base_url: Optional[str] = None
    model: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)

    def resolved_url(self) -> Optional[str]:
        return self.base_url or DEFAULT_PROVIDER_URLS.get(self.provider)

    def resolved_model(self) -> str:
        return self.model or DEFAULT_EMBED_MODELS.get(self.provider, "nomic-embed-text")


def get_embedding_settings() -> EmbeddingSettings:
    """Build embedding settings from CHATWEAVE_EMBED_* environment variables."""
    timeout = os.getenv(EMBED_TIMEOUT_ENV)
    return EmbeddingSettings(
        provider=os.getenv(EMBED_PROVIDER_ENV, "ollama").lower(),
        base_url=os.getenv(EMBED_URL_ENV) or None,
        model=os.getenv(EMBED_MODEL_ENV) or None,
        timeout=float(timeout) if timeout else 30.0,
    )
