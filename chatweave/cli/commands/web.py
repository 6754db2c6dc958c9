"""
Web API server command.

Starts the FastAPI app with uvicorn.
"""
import os

import click
import uvicorn

from chatweave.core.config import DB_PATH_ENV


@click.command()
@click.option(
    '--host',
    default='127.0.0.1',
    help='Host to bind to (default: 127.0.0.1)'
)
@click.option(
    '--port',
    type=int,
    default=5000,
    help='Port to bind to (default: 5000)'
)
@click.option(
    '--db-path',
    type=click.Path(),
    help='Path to database file (default: OS-specific location)'
)
@click.option(
    '--reload',
    is_flag=True,
    help='Auto-reload on code changes'
)
@click.pass_context
def web(ctx, host, port, db_path, reload):
    """
    Start the search and consolidation API server.

    Every request opens the store from disk, so ingesting from another
    shell is picked up by the next request.
    """
    if db_path:
        os.environ[DB_PATH_ENV] = str(db_path)
    elif ctx.obj is not None and ctx.obj.db_path:
        os.environ[DB_PATH_ENV] = str(ctx.obj.db_path)

    click.echo(f"Starting chatweave server on http://{host}:{port}")
    if reload:
        click.echo("  Auto-reload: enabled (server restarts on code changes)")
    click.echo("\nPress Ctrl+C to stop\n")

    uvicorn.run(
        "chatweave.api.main:app",
        host=host,
        port=port,
        reload=reload
    )
