"""aipipe CLI — entry point for ask, chat, config, session, and listing commands."""

import os

import click

from aipipe import __version__
from aipipe.core.config import ConfigContext
from aipipe.core.utils.logging import setup_logging


@click.group()
@click.version_option(version=__version__, package_name="aipipe")
@click.option(
    "-c",
    "--config",
    "config_dir",
    type=click.Path(file_okay=False),
    help="Configuration directory (default: $AIPIPE_CONFIG_DIR or ~/.aipipe).",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging on stderr.")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write logs to this file (rotated).")
@click.pass_context
def main(ctx: click.Context, config_dir: str | None, verbose: bool, log_file: str | None) -> None:
    """aipipe — pipe text into any LLM from the terminal."""
    setup_logging(level="DEBUG" if verbose else "WARNING", log_file=log_file)
    ctx.obj = ConfigContext.from_env(os.environ, override=config_dir)


# Register subcommands
from .ask_cmd import ask
from .chat_cmd import chat
from .config_cmd import config
from .info_cmd import cache, providers, roles, templates
from .session_cmd import session

main.add_command(ask)
main.add_command(chat)
main.add_command(config)
main.add_command(session)
main.add_command(providers)
main.add_command(roles)
main.add_command(templates)
main.add_command(cache)
