"""aipipe chat — interactive multi-turn chat in the terminal."""

from __future__ import annotations

import click

from aipipe.core.cli.common import build_orchestrator, echo_delta, explicit_flags, render_markdown
from aipipe.core.exceptions import AipipeError, GenerationCancelled
from aipipe.core.llm.pricing import format_cost
from aipipe.core.llm.token_budget import BudgetState
from aipipe.core.llm.types import Message

EXIT_COMMANDS = frozenset({"exit", "quit", "/bye", "/exit"})

CHAT_CONFIG_OPTIONS = ("model", "system", "temperature", "max_output_tokens", "budget", "retries", "cache", "show_cost")


class ChatLoop:
    """Sequential REPL that runs one orchestrated turn per line of input.

    History and spend are held in memory; a failed turn leaves both unchanged.
    Budget is always cumulative across the conversation, including across
    /clear, which forgets history but not what has been spent.
    """

    def __init__(self, orchestrator, flags: dict, role: str | None = None, session: str | None = None):
        self.orchestrator = orchestrator
        self.flags = {**flags, "budget_mode": "cumulative", "json_output": False}
        self.role = role
        self.session = session
        self.history: list[Message] = []

        config, _ = orchestrator.resolve(self.flags)
        spent = 0.0
        if session:
            loaded = orchestrator.sessions.load(session)
            self.history = list(loaded.history())
            spent = loaded.cumulative_cost
        self.budget = BudgetState(limit=config.budget, spent=spent, mode="cumulative")

    def clear(self) -> None:
        self.history = []

    def turn(self, text: str, on_text=None):
        """Run one turn.  On success history and budget advance; on failure nothing changes."""
        from aipipe.core.orchestrator import Invocation

        invocation = Invocation(args=(text,), role=self.role, session=self.session, flags=self.flags)
        prepared = self.orchestrator.prepare(invocation, history=tuple(self.history))
        result = self.orchestrator.execute(prepared, budget=self.budget, on_text=on_text)

        self.history.append(Message(role="user", content=result.user_message.content))
        self.history.append(Message(role="assistant", content=result.text))
        self.budget = result.budget
        return result, prepared.config


@click.command()
@click.option("-m", "--model", help="Model as provider/model-id, a bare model-id, or an alias.")
@click.option("-s", "--system", help="System prompt.")
@click.option("-r", "--role", help="Use roles/NAME.txt as the system prompt.")
@click.option("-t", "--temperature", type=float, help="Sampling temperature (0-2).")
@click.option("--max-output-tokens", type=int, help="Maximum tokens to generate per turn.")
@click.option("--budget", type=float, help="Dollar ceiling for the whole conversation.")
@click.option("--retries", type=int, help="Retries for rate limits and transient errors (0 disables).")
@click.option("--cache/--no-cache", default=True, help="Reuse identical earlier responses.")
@click.option("-C", "--session", help="Load and save the conversation as a named session.")
@click.option("--cost", "show_cost", is_flag=True, help="Print each turn's cost and the running total.")
@click.pass_context
def chat(ctx: click.Context, role, session, **_options) -> None:
    """Chat with a model in the terminal."""
    from rich.console import Console
    from rich.panel import Panel

    console = Console()
    flags = explicit_flags(ctx, CHAT_CONFIG_OPTIONS)
    try:
        loop = ChatLoop(build_orchestrator(ctx), flags, role=role, session=session)
    except AipipeError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    console.print(Panel("Type a message to chat. Commands: /clear, exit, quit, /bye", title="aipipe chat"))

    while True:
        try:
            user_input = console.input("[bold cyan]You:[/] ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\nGoodbye!")
            break

        if not user_input:
            continue
        if user_input.lower() in EXIT_COMMANDS:
            console.print("Goodbye!")
            break
        if user_input.lower() == "/clear":
            loop.clear()
            console.print("[dim]Conversation cleared.[/dim]")
            continue

        try:
            result, config = loop.turn(user_input, on_text=echo_delta)
        except GenerationCancelled:
            console.print("\n[dim]Cancelled.[/dim]")
            continue
        except AipipeError as e:
            click.echo(f"Error: {e}", err=True)
            continue

        if result.streamed:
            click.echo()
        elif config.markdown:
            render_markdown(result.text)
        else:
            click.echo(result.text)

        if config.show_cost:
            summary = f"Cost: {format_cost(result.cost)} (session total ${loop.budget.spent:.4f}"
            if loop.budget.remaining is not None:
                summary += f", ${loop.budget.remaining:.4f} of budget left"
            click.echo(summary + ")", err=True)
