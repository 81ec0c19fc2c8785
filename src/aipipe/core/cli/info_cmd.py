"""aipipe providers / roles / templates / cache — listing and housekeeping."""

from __future__ import annotations

import os

import click

from aipipe.core.cli.common import get_context
from aipipe.core.llm.caching import ResponseCache
from aipipe.core.llm.config import PROVIDERS
from aipipe.core.llm.templates import list_roles, list_templates
from aipipe.core.secrets import ApiKeyFile, EnvProvider, SecretsManager


@click.command()
@click.pass_context
def providers(ctx: click.Context) -> None:
    """List supported providers and whether their credentials are present."""
    from rich.console import Console
    from rich.table import Table

    context = get_context(ctx)
    secrets = SecretsManager([EnvProvider(os.environ), ApiKeyFile(context.api_keys_path)])

    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Environment variable(s)")
    table.add_column("Status")
    for provider_id, spec in PROVIDERS.items():
        status = "[green]set[/]" if secrets.is_available(provider_id) else "[dim]missing[/]"
        table.add_row(provider_id, ", ".join(spec.env_vars), status)
    Console().print(table)


@click.command()
@click.pass_context
def roles(ctx: click.Context) -> None:
    """List roles in the roles directory."""
    context = get_context(ctx)
    names = list_roles(context.roles_dir)
    if not names:
        click.echo(f"No roles found in {context.roles_dir}")
        return
    for name in names:
        click.echo(name)


@click.command()
@click.pass_context
def templates(ctx: click.Context) -> None:
    """List templates in the templates directory."""
    context = get_context(ctx)
    names = list_templates(context.templates_dir)
    if not names:
        click.echo(f"No templates found in {context.templates_dir}")
        return
    for name in names:
        click.echo(name)


@click.group()
def cache() -> None:
    """Manage the response cache."""


@cache.command("clear")
@click.pass_context
def clear(ctx: click.Context) -> None:
    """Delete every cached response."""
    removed = ResponseCache(get_context(ctx).cache_dir).clear()
    click.echo(f"Removed {removed} cached response{'s' if removed != 1 else ''}.")
