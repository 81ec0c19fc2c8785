"""aipipe ask — send one prompt and print the response."""

from __future__ import annotations

import click

from aipipe.core.cli.common import build_orchestrator, echo_delta, emit_result, explicit_flags, handle_errors, read_stdin

# Options that feed the configuration resolver as explicit CLI flags
CONFIG_OPTIONS = (
    "model",
    "system",
    "temperature",
    "max_output_tokens",
    "json_output",
    "output_format",
    "stream",
    "markdown",
    "budget",
    "budget_mode",
    "retries",
    "cache",
    "show_cost",
)


@click.command()
@click.argument("prompt", nargs=-1)
@click.option("-m", "--model", help="Model as provider/model-id, a bare model-id, or an alias.")
@click.option("-s", "--system", help="System prompt.")
@click.option("-r", "--role", help="Use roles/NAME.txt as the system prompt.")
@click.option("-T", "--template", help="Wrap the input with templates/NAME.md.")
@click.option("-f", "--file", "files", multiple=True, help="Attach a file's contents (repeatable).")
@click.option("-i", "--image", "images", multiple=True, help="Attach an image (repeatable).")
@click.option("-j", "--json", "json_output", is_flag=True, help="Print a structured response object.")
@click.option("--format", "output_format", type=click.Choice(["json", "yaml", "csv", "text"]), help="Structured output format.")
@click.option("--stream/--no-stream", default=True, help="Stream text as it arrives.")
@click.option("--markdown/--no-markdown", default=False, help="Render the response as markdown.")
@click.option("-t", "--temperature", type=float, help="Sampling temperature (0-2).")
@click.option("--max-output-tokens", type=int, help="Maximum tokens to generate.")
@click.option("--budget", type=float, help="Dollar ceiling for this request (or session, with --budget-mode cumulative).")
@click.option("--budget-mode", type=click.Choice(["per-request", "cumulative"]), help="How --budget is enforced.")
@click.option("--retries", type=int, help="Retries for rate limits and transient errors (0 disables).")
@click.option("--cache/--no-cache", default=True, help="Reuse identical earlier responses.")
@click.option("-C", "--session", help="Continue (and save to) a named session.")
@click.option("--cost", "show_cost", is_flag=True, help="Print the cost of the call to stderr.")
@click.pass_context
@handle_errors
def ask(ctx: click.Context, prompt: tuple[str, ...], role, template, files, images, session, **_options) -> None:
    """Send PROMPT (plus piped stdin and attachments) to a model."""
    from aipipe.core.orchestrator import Invocation

    flags = explicit_flags(ctx, CONFIG_OPTIONS)
    if flags.get("markdown") and "stream" not in flags:
        flags["stream"] = False

    orchestrator = build_orchestrator(ctx)
    invocation = Invocation(
        args=prompt,
        stdin=read_stdin(),
        files=files,
        images=images,
        role=role,
        template=template,
        session=session,
        flags=flags,
    )
    prepared = orchestrator.prepare(invocation)
    result = orchestrator.execute(prepared, on_text=echo_delta)
    emit_result(result, prepared.config)
