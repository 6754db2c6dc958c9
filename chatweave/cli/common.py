"""
Shared CLI plumbing: the context object and common options.
"""

import logging
from pathlib import Path
from typing import Optional

import click

from chatweave.core.config import DB_PATH_ENV, get_default_db_path
from chatweave.core.db import Database

logger = logging.getLogger(__name__)


class CLIContext:
    """
    State shared by all commands of one invocation.

    The store is opened lazily on first use and closed when the click
    context tears down.
    """

    def __init__(self, db_path: Optional[Path] = None, verbose: bool = False):
        self.db_path = db_path
        self.verbose = verbose
        self._db: Optional[Database] = None

    def get_db(self) -> Database:
        if self._db is None:
            path = self.db_path or get_default_db_path()
            logger.debug("Opening store at %s", path)
            self._db = Database(str(path))
        return self._db

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None


db_option = click.option(
    "--db-path",
    type=click.Path(dir_okay=False),
    envvar=DB_PATH_ENV,
    help="Path to database file (default: OS-specific location)",
)


def use_db_path(ctx: click.Context, db_path: Optional[str]) -> Database:
    """Apply a per-command --db-path override and return the store."""
    if db_path:
        ctx.obj.close()
        ctx.obj.db_path = Path(db_path)
    return ctx.obj.get_db()
