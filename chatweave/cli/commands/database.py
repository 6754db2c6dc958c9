"""
Database-related CLI commands.

Commands for ingesting vendor exports, searching, summarizing and
snapshotting the local store.
"""

from datetime import datetime, timezone
from pathlib import Path

import click

from chatweave.cli.common import db_option, use_db_path
from chatweave.core.errors import ChatweaveError
from chatweave.core.models import MessageRole, Vendor
from chatweave.core.ranking import ALL_VENDORS, ANY_ROLE, SearchFacets
from chatweave.services.ingestion import IngestionService
from chatweave.services.search import SearchService


def _fmt_ts(ts):
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--vendor",
    type=click.Choice([v.value for v in Vendor]),
    required=True,
    help="Vendor that produced the export",
)
@click.option("--source-label", default=None, help="Display label for this source")
@db_option
@click.pass_context
def ingest(ctx, path, vendor, source_label, db_path):
    """Ingest a vendor export file into the local DB."""
    db = use_db_path(ctx, db_path)

    click.echo(f"Ingesting {vendor} export {path}...")
    try:
        result = IngestionService(db).ingest_file(path, vendor, label=source_label)
        db.save()
    except ChatweaveError as e:
        click.secho(f"Error during ingestion: {e}", fg="red", err=True)
        raise click.Abort()

    click.echo("\nIngestion complete!")
    click.secho(
        f"  Conversations: {result.conversations} ({result.conversations_created} new)", fg="green"
    )
    click.secho(f"  Messages inserted: {result.messages_inserted}", fg="green")
    click.echo(f"  Messages skipped (duplicates): {result.messages_skipped}")
    if result.likely_duplicates:
        click.echo(f"  Likely near-duplicates kept: {result.likely_duplicates}")
    if result.errors:
        click.secho(f"  Errors: {len(result.errors)}", fg="yellow")
        if ctx.obj.verbose:
            for error in result.errors:
                click.echo(f"    {error.source}: {error.message.splitlines()[0]}", err=True)


@click.command()
@click.argument("query")
@click.option("--regex", is_flag=True, help="Treat QUERY as a regular expression")
@click.option(
    "--vendor",
    type=click.Choice([ALL_VENDORS] + [v.value for v in Vendor]),
    default=ALL_VENDORS,
    help="Only search one vendor",
)
@click.option(
    "--role",
    type=click.Choice([ANY_ROLE] + [r.value for r in MessageRole]),
    default=ANY_ROLE,
    help="Only search one message role",
)
@click.option("--conversations", is_flag=True, help="Rank whole conversations instead of messages")
@click.option("--limit", default=20, show_default=True, help="Maximum number of results")
@db_option
@click.pass_context
def search(ctx, query, regex, vendor, role, conversations, limit, db_path):
    """Search messages in the local database."""
    db = use_db_path(ctx, db_path)
    service = SearchService(db)
    facets = SearchFacets(vendor=vendor, role=role)

    if conversations:
        results = service.search_conversations(query, facets=facets, use_regex=regex, limit=limit)
    else:
        results = service.search_messages(query, facets=facets, use_regex=regex, limit=limit)

    if not results:
        click.echo(f"No results matching '{query}'")
        return

    click.secho(f"\nFound {len(results)} results matching '{query}':\n", fg="green")
    for item in results:
        doc = item.doc
        header = f"[{item.score:.2f}] {doc.title or 'Untitled'} ({doc.vendor or '?'}, {_fmt_ts(doc.date)})"
        click.secho(header, bold=True)
        click.echo(f"  conversation {doc.conversation_id}" + (f", {doc.role}" if doc.role else ""))
        body = (doc.body or "").replace("\n", " ")
        if body:
            click.echo(f"  {body[:160]}{'...' if len(body) > 160 else ''}")
        click.echo()


@click.command()
@db_option
@click.pass_context
def stats(ctx, db_path):
    """Show store statistics."""
    db = use_db_path(ctx, db_path)
    summary = db.get_stats()

    click.echo("Store statistics:")
    click.echo(f"  Conversations: {summary.total_conversations}")
    click.echo(f"  Messages: {summary.total_messages}")
    click.echo(f"  Sources: {summary.sources}")
    click.echo(f"  Last updated: {_fmt_ts(summary.last_updated)}")
    click.echo(f"  Embeddings: {db.embeddings.count()}")
    click.echo(f"  Relationships: {db.relationships.count()}")

    sources = db.list_sources()
    if sources:
        click.echo("\nSources:")
        for source in sources:
            label = source.label or source.root or source.id
            count = db.count_conversations(source.id)
            click.echo(f"  {source.vendor.value:8} {label} ({count} conversations)")


@click.command("export-snapshot")
@click.argument("out", type=click.Path(dir_okay=False, writable=True))
@db_option
@click.pass_context
def export_snapshot(ctx, out, db_path):
    """Write a portable snapshot of the store to OUT."""
    db = use_db_path(ctx, db_path)
    try:
        data = db.export_bytes()
        Path(out).write_bytes(data)
    except (ChatweaveError, OSError) as e:
        click.secho(f"Error exporting snapshot: {e}", fg="red", err=True)
        raise click.Abort()
    click.secho(f"Snapshot written to {out} ({len(data)} bytes)", fg="green")
