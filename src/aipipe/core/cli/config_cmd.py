"""aipipe config — show, set, reset, and locate configuration."""

from __future__ import annotations

import os

import click

from aipipe.core.cli.common import get_context, handle_errors
from aipipe.core.config import flatten, read_settings_file, reset_settings, set_setting
from aipipe.core.llm.config import PROVIDERS
from aipipe.core.secrets import ApiKeyFile, EnvProvider, mask_api_key


@click.group()
def config() -> None:
    """Manage ~/.aipipe configuration and API keys."""


@config.command("show")
@click.pass_context
def show(ctx: click.Context) -> None:
    """Show settings, aliases, stored API keys, and provider environment status."""
    context = get_context(ctx)
    settings = read_settings_file(context)
    aliases = settings.pop("aliases", {}) or {}
    settings.pop("apiKeys", None)

    click.echo(f"Config directory: {context.config_dir}")
    click.echo()
    click.echo("Settings:")
    flat = flatten(settings)
    if flat:
        for key in sorted(flat):
            click.echo(f"  {key} = {flat[key]}")
    else:
        click.echo("  (none)")

    if isinstance(aliases, dict) and aliases:
        click.echo()
        click.echo("Aliases:")
        for name in sorted(aliases):
            click.echo(f"  {name} -> {aliases[name]}")

    stored = ApiKeyFile(context.api_keys_path).as_dict()
    click.echo()
    click.echo("API keys:")
    if stored:
        for provider_id in sorted(stored):
            click.echo(f"  {provider_id}: {mask_api_key(stored[provider_id])}")
    else:
        click.echo("  (none stored)")

    env = EnvProvider(os.environ)
    click.echo()
    click.echo("Environment:")
    for provider_id, spec in PROVIDERS.items():
        status = "set" if env.has_credentials(provider_id) else "missing"
        click.echo(f"  {provider_id:<12} {', '.join(spec.env_vars)}: {status}")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
@handle_errors
def set_(ctx: click.Context, key: str, value: str) -> None:
    """Set KEY to VALUE.  A provider id as KEY stores an API key."""
    context = get_context(ctx)
    destination, stored = set_setting(context, key, value)
    if key in PROVIDERS:
        click.echo(f"Saved API key for {key} ({mask_api_key(value)}) to {destination}")
    else:
        click.echo(f"Set {key} = {stored!r} in {destination}")


@config.command("reset")
@click.option("-y", "--yes", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def reset(ctx: click.Context, yes: bool) -> None:
    """Clear all settings (API keys are kept)."""
    context = get_context(ctx)
    if not yes:
        click.confirm(f"Reset all settings in {context.settings_path}?", abort=True)
    reset_settings(context)
    click.echo("Settings reset.")


@config.command("path")
@click.pass_context
def path(ctx: click.Context) -> None:
    """Print the configuration directory."""
    click.echo(str(get_context(ctx).config_dir))
