"""aipipe session — list, export, import, and delete saved sessions."""

from __future__ import annotations

import click

from aipipe.core.cli.common import get_context, handle_errors
from aipipe.core.session import EXPORT_FORMATS, SessionStore


def _store(ctx: click.Context) -> SessionStore:
    return SessionStore(get_context(ctx).history_dir)


@click.group()
def session() -> None:
    """Manage saved conversation sessions."""


@session.command("list")
@click.pass_context
@handle_errors
def list_(ctx: click.Context) -> None:
    """List sessions with their turn count and spend."""
    from rich.console import Console
    from rich.table import Table

    summaries = _store(ctx).summaries()
    if not summaries:
        click.echo("No saved sessions.")
        return

    table = Table(title="Sessions")
    table.add_column("Name", style="cyan")
    table.add_column("Messages", justify="right")
    table.add_column("Cost", justify="right")
    for summary in summaries:
        table.add_row(summary.name, str(summary.turns), f"${summary.cumulative_cost:.4f}")
    Console().print(table)


@session.command("export")
@click.argument("name")
@click.option(
    "--format", "fmt", type=click.Choice(EXPORT_FORMATS), default="json", show_default=True, help="Export format."
)
@click.option("-o", "--output", type=click.Path(dir_okay=False, writable=True), help="Write to a file instead of stdout.")
@click.pass_context
@handle_errors
def export(ctx: click.Context, name: str, fmt: str, output: str | None) -> None:
    """Export session NAME."""
    rendered = _store(ctx).export(name, fmt)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(rendered if rendered.endswith("\n") else rendered + "\n")
        click.echo(f"Exported session {name!r} to {output}", err=True)
    else:
        click.echo(rendered)


@session.command("import")
@click.argument("name")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_context
@handle_errors
def import_(ctx: click.Context, name: str, source) -> None:
    """Import session NAME from SOURCE (a JSON/YAML file, or - for stdin)."""
    imported = _store(ctx).import_session(name, source.read())
    click.echo(f"Imported session {name!r} ({len(imported.messages)} messages)")


@session.command("delete")
@click.argument("name")
@click.pass_context
@handle_errors
def delete(ctx: click.Context, name: str) -> None:
    """Delete session NAME."""
    _store(ctx).delete(name)
    click.echo(f"Deleted session {name!r}")
