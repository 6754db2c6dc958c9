"""
Command-line interface for chatweave.

Run as ``python -m chatweave`` or through the ``chatweave`` script.
"""

import logging
from pathlib import Path

import click

from chatweave import __version__
from chatweave.cli.commands.consolidate import consolidate, related
from chatweave.cli.commands.database import export_snapshot, ingest, search, stats
from chatweave.cli.commands.web import web
from chatweave.cli.common import CLIContext, db_option


@click.group()
@click.version_option(__version__, prog_name="chatweave")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@db_option
@click.pass_context
def main(ctx, verbose, db_path):
    """Merge, search and consolidate chat exports from several assistants."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CLIContext(db_path=Path(db_path) if db_path else None, verbose=verbose)
    ctx.call_on_close(ctx.obj.close)


main.add_command(ingest)
main.add_command(search)
main.add_command(stats)
main.add_command(export_snapshot)
main.add_command(related)
main.add_command(consolidate)
main.add_command(web)
