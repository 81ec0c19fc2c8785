"""Shared setup, error handling, and output rendering for CLI commands."""

from __future__ import annotations

import csv
import functools
import io
import json
import os
import sys
from collections.abc import Callable, Iterable
from typing import Any

import click
import yaml
from click.core import ParameterSource

from aipipe.core.config import ConfigContext
from aipipe.core.config_schema import Configuration
from aipipe.core.exceptions import AipipeError, GenerationCancelled
from aipipe.core.llm.pricing import format_cost

EXIT_ERROR = 1
EXIT_CANCELLED = 130


def get_context(ctx: click.Context) -> ConfigContext:
    """The ConfigContext built by the root group (``--config`` / $AIPIPE_CONFIG_DIR)."""
    root = ctx.find_root()
    if not isinstance(root.obj, ConfigContext):
        root.obj = ConfigContext.from_env(os.environ)
    return root.obj


def build_orchestrator(ctx: click.Context):
    from aipipe.core.orchestrator import Orchestrator

    return Orchestrator(get_context(ctx), env=os.environ)


def explicit_flags(ctx: click.Context, names: Iterable[str]) -> dict[str, Any]:
    """Values for *names* that were actually given on the command line."""
    flags = {}
    for name in names:
        if ctx.get_parameter_source(name) in (ParameterSource.DEFAULT, None):
            continue
        flags[name] = ctx.params[name]
    return flags


def read_stdin() -> str | None:
    """Piped stdin content with trailing whitespace removed, or None for a terminal."""
    stream = click.get_text_stream("stdin")
    if stream.isatty():
        return None
    content = stream.read().rstrip()
    return content or None


def fail(message: str, code: int = EXIT_ERROR) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn expected failures into ``Error: ...`` on stderr and a non-zero exit."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except GenerationCancelled:
            click.echo("\nCancelled.", err=True)
            sys.exit(EXIT_CANCELLED)
        except AipipeError as e:
            fail(str(e))

    return wrapper


CSV_FIELDS = ("text", "model", "input_tokens", "output_tokens", "total_tokens", "finish_reason", "cached", "cost")


def render_structured(data: dict[str, Any], fmt: str) -> str:
    if fmt == "csv":
        return _render_csv(data)
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True).rstrip()
    if fmt == "text":
        return str(data.get("text", ""))
    return json.dumps(data, indent=2, ensure_ascii=False)


def _render_csv(data: dict[str, Any]) -> str:
    """Header line plus one row; usage counts are lifted to top-level columns."""
    row = {**data, **(data.get("usage") or {})}
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    writer.writerow(row)
    return buffer.getvalue().rstrip("\n")


def render_markdown(text: str) -> None:
    from rich.console import Console
    from rich.markdown import Markdown

    Console().print(Markdown(text))


def emit_result(result, config: Configuration) -> None:
    """Write the turn's output to stdout (cost goes to stderr)."""
    if config.json_output:
        click.echo(render_structured(result.to_dict(), config.output_format))
    elif result.streamed:
        click.echo()
    elif config.markdown:
        render_markdown(result.text)
    else:
        click.echo(result.text)

    if config.show_cost:
        click.echo(f"Cost: {format_cost(result.cost)}", err=True)


def echo_delta(text: str) -> None:
    click.echo(text, nl=False)
    sys.stdout.flush()
