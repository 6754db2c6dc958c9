"""
Consolidation CLI commands.

Builds embeddings, the relationship graph and consolidated bundles, and
looks up related conversations.
"""

import threading

import click

from chatweave.cli.common import db_option, use_db_path
from chatweave.core.db.constants import DEFAULT_RELATED_THRESHOLD
from chatweave.core.errors import ChatweaveError
from chatweave.services.consolidation import ConsolidationService
from chatweave.services.embeddings import create_provider

_threshold_option = click.option(
    "--threshold",
    type=click.FloatRange(0.0, 1.0),
    default=DEFAULT_RELATED_THRESHOLD,
    show_default=True,
    help="Minimum cosine similarity for a relationship",
)


@click.command()
@click.option("--rebuild", is_flag=True, help="Drop all derived data first")
@_threshold_option
@db_option
@click.pass_context
def consolidate(ctx, rebuild, threshold, db_path):
    """Embed messages, link related conversations and build bundles."""
    db = use_db_path(ctx, db_path)

    try:
        provider = create_provider()
    except (ChatweaveError, ValueError) as e:
        click.secho(f"Embedding provider unavailable: {e}", fg="red", err=True)
        raise click.Abort()

    service = ConsolidationService(db, provider=provider, threshold=threshold)
    cancel_event = threading.Event()

    click.echo(f"{'Rebuilding' if rebuild else 'Building'} master database with {provider.model_name}...")
    try:
        if rebuild:
            outcome = service.rebuild(cancel_event=cancel_event)
        else:
            outcome = service.build_master_database(cancel_event=cancel_event)
    except KeyboardInterrupt:
        cancel_event.set()
        db.save()
        click.secho("Interrupted; partial results saved", fg="yellow", err=True)
        raise click.Abort()
    db.save()

    click.echo("\nConsolidation complete!")
    click.secho(
        f"  Embeddings: {outcome.embeddings.succeeded}/{outcome.embeddings.processed}", fg="green"
    )
    click.secho(f"  Relationships: {outcome.relationships.succeeded}", fg="green")
    click.secho(f"  Bundles: {len(outcome.bundles)}", fg="green")
    failures = len(outcome.embeddings.errors) + len(outcome.relationships.errors)
    if failures:
        click.secho(f"  Errors: {failures}", fg="yellow")
    if ctx.obj.verbose:
        for bundle in outcome.bundles:
            click.echo(
                f"  {bundle.id}: {bundle.title} "
                f"({len(bundle.conversation_ids)} conversations, topics: {', '.join(bundle.topics)})"
            )


@click.command()
@click.argument("conv_id", type=int)
@_threshold_option
@db_option
@click.pass_context
def related(ctx, conv_id, threshold, db_path):
    """List conversations related to CONV_ID."""
    db = use_db_path(ctx, db_path)
    conversation = db.get_conversation(conv_id)
    if conversation is None:
        click.secho(f"Conversation {conv_id} not found", fg="red", err=True)
        raise click.Abort()

    had_edges = bool(db.get_relationships_for(conv_id))
    relationships = ConsolidationService(db, threshold=threshold).get_related(conv_id)
    if not had_edges and relationships:
        db.save()

    if not relationships:
        click.echo(f"No conversations related to '{conversation.title or conv_id}'")
        return

    click.secho(f"\nRelated to '{conversation.title or conv_id}':\n", fg="green")
    for rel in relationships:
        other = db.get_conversation(rel.other(conv_id))
        title = (other.title if other else None) or "Untitled"
        click.echo(
            f"  [{rel.similarity_score:.3f}] {rel.relationship_type.value:8} "
            f"{rel.other(conv_id)}: {title}"
        )
