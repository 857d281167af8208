"""CLI commands over a local learning loop: suggest and mine."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from ..core.models import SearchQuery
from .main import main

_DATA_DIR_HELP = "Trace store directory. Defaults to $HAPPYPATHS_DATA_DIR or .happy-paths."


@main.command()
@click.argument("query")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help=_DATA_DIR_HELP,
)
@click.option("--limit", type=int, default=10, show_default=True, help="Retrieval depth.")
def suggest(query: str, data_dir: Path | None, limit: int) -> None:
    """Suggest fixes from prior runs for a failure description.

    \b
    Examples:
        happypaths suggest "cannot find module express"
        happypaths suggest "lint failed" --data-dir ~/.happy-paths
    """
    from ..local import initialize_local_learning_loop

    async def run():
        loop, bootstrap = await initialize_local_learning_loop(data_dir)
        click.echo(
            f"Loaded {bootstrap.event_count} events ({bootstrap.document_count} documents)"
        )
        return await loop.suggest(SearchQuery(text=query, limit=limit))

    suggestions = asyncio.run(run())
    if not suggestions:
        click.echo("No suggestions.")
        return

    for suggestion in suggestions:
        click.echo(f"\n[{suggestion.confidence:.0%}] {suggestion.title}")
        click.echo(f"  {suggestion.rationale}")
        for line in suggestion.playbook_markdown.splitlines():
            click.echo(f"  {line}")


@main.command()
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help=_DATA_DIR_HELP,
)
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum artifacts.")
def mine(data_dir: Path | None, limit: int) -> None:
    """List wrong-turn fixes mined from the local trace store."""
    from ..local import initialize_local_learning_loop

    async def run():
        loop, _ = await initialize_local_learning_loop(data_dir)
        return await loop.mine(limit)

    artifacts = asyncio.run(run())
    if not artifacts:
        click.echo("No wrong-turn fixes mined yet.")
        return

    for artifact in artifacts:
        cross = "cross-session" if artifact.cross_session_support else "single-session"
        click.echo(
            f"[{artifact.confidence:.2f}] {artifact.summary} "
            f"(support {artifact.support_count}, {artifact.support_session_count} sessions, {cross})"
        )
