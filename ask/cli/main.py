"""
ask CLI - Ask a question, manage tool servers and sessions.

Run `ask <question>` to get an answer; `ask --help` lists the subcommands.
"""

import logging
import sys
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel

from ask import __version__
from ask.core.orchestrator import MAX_TURNS, AskError, ask
from ask.providers.base import ModelAPIError
from ask.state.sessions import LAST_SESSION, RESERVED_NAMES, SessionStore, check_session_name
from ask.validation.config import DEFAULT_MODEL, Config, ConfigError, ask_home

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    handler = RichHandler(console=err_console, show_time=False, show_path=False)
    logging.basicConfig(level=logging.WARNING, format="%(message)s", handlers=[handler], force=True)
    logging.getLogger("ask").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}", markup=True, highlight=False)
    sys.exit(1)


def _sessions() -> SessionStore:
    return SessionStore(ask_home() / "sessions")


def _session_name(ctx, param, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        return check_session_name(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


class AskGroup(click.Group):
    """Routes anything that isn't a subcommand to the ``ask`` command."""

    def parse_args(self, ctx, args):
        if args and args[0] not in self.commands and args[0] not in ("--help", "-h", "--version"):
            args = ["ask"] + list(args)
        return super().parse_args(ctx, args)


@click.group(cls=AskGroup, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="ask")
def cli():
    """Ask questions from the terminal; the model may run tools to answer."""


@cli.command("ask", hidden=True)
@click.argument("question", nargs=-1, required=True)
@click.option("-m", "--model", default=None, help="Model to use for this question.")
@click.option(
    "-s", "--session", default=None, callback=_session_name, help="Resume and save into this named session."
)
@click.option("-c", "--continue", "continue_", is_flag=True, help="Resume the most recent session.")
@click.option("--max-turns", default=MAX_TURNS, show_default=True, type=click.IntRange(min=1))
@click.option("-v", "--verbose", is_flag=True, help="Show what happens behind the scenes.")
def ask_command(
    question: Tuple[str, ...],
    model: Optional[str],
    session: Optional[str],
    continue_: bool,
    max_turns: int,
    verbose: bool,
):
    """Ask a question."""
    _setup_logging(verbose)

    if continue_ and not session:
        session = _sessions().last_name()

    try:
        answer = ask(" ".join(question), model, session, max_turns, verbose)
    except (AskError, ModelAPIError, ConfigError) as e:
        _fail(str(e))
        return

    if console.is_terminal:
        console.print(Markdown(answer))
    else:
        click.echo(answer)


# ── Configuration ─────────────────────────────────────────────────────────


@cli.command("set-base-url")
@click.argument("url")
def set_base_url(url: str):
    """Set the OpenAI compatible URL for the LLM."""
    try:
        config = Config.load_or_empty()
        config.set_base_url(url)
        config.save()
    except ConfigError as e:
        _fail(str(e))
    console.print(f"Base URL set to {url}", highlight=False)


@cli.command("set-default-model")
@click.argument("model")
def set_default_model(model: str):
    """Set the default model to use for the LLM."""
    try:
        config = Config.load_or_empty()
        config.set_default_model(model)
        config.save()
    except ConfigError as e:
        _fail(str(e))
    console.print(f"Default model set to {model}", highlight=False)


@cli.command("get-default-model")
def get_default_model():
    """Show the model used when none is given."""
    try:
        config = Config.load()
    except ConfigError:
        click.echo(DEFAULT_MODEL)
        return
    click.echo(config.default_model or DEFAULT_MODEL)


# ── Tool servers ──────────────────────────────────────────────────────────


@cli.group()
def mcp():
    """MCP server and tool management."""


@mcp.command("list")
def mcp_list():
    """List configured MCP servers."""
    try:
        config = Config.load()
    except ConfigError as e:
        _fail(f"{e}\nRun 'ask mcp add' to create your first MCP server.")
        return

    if not config.data.mcp_servers:
        console.print("No MCP servers configured.")
        console.print("Add one with: ask mcp add <name> <command> --args <args>", highlight=False)
        return

    console.print("Configured MCP servers:\n")
    for name, server in config.data.mcp_servers.items():
        console.print(f"  [bold]{name}[/bold]")
        console.print(f"    Command: {server.command}", highlight=False)
        if server.args:
            console.print(f"    Args: {' '.join(server.args)}", highlight=False, markup=False)
        if server.env:
            console.print("    Env:")
            for key, value in server.env.items():
                console.print(f"      {key}={value}", highlight=False, markup=False)
        console.print()


def _parse_env(pairs: List[str]) -> dict:
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            err_console.print(f"[yellow]Warning:[/yellow] Invalid env format '{pair}', expected KEY=VALUE")
            continue
        env[key] = value
    return env


def _split_csv(values: Tuple[str, ...]) -> List[str]:
    return [item for value in values for item in value.split(",") if item]


@mcp.command("add")
@click.argument("name")
@click.argument("command")
@click.option("-a", "--args", "args", multiple=True, help="Arguments for the command (comma separated).")
@click.option("-e", "--env", "env", multiple=True, help="Environment variables in KEY=VALUE format.")
def mcp_add(name: str, command: str, args: Tuple[str, ...], env: Tuple[str, ...]):
    """Add a new MCP server (NAME is also its tool prefix)."""
    try:
        config = Config.load_or_empty()
        config.add_server(name, command, _split_csv(args), _parse_env(_split_csv(env)))
        path = config.save()
    except ConfigError as e:
        _fail(f"Error adding server: {e}")
        return
    console.print(f"[green]✓[/green] Added MCP server '{name}' to {path}", highlight=False)


@mcp.command("remove")
@click.argument("name")
def mcp_remove(name: str):
    """Remove an MCP server."""
    try:
        config = Config.load()
        config.remove_server(name)
        path = config.save()
    except ConfigError as e:
        _fail(f"Error removing server: {e}")
        return
    console.print(f"[green]✓[/green] Removed MCP server '{name}' from {path}", highlight=False)


# ── Sessions ──────────────────────────────────────────────────────────────


@cli.group()
def session():
    """Saved conversations."""


@session.command("list")
def session_list():
    """List all sessions."""
    try:
        sessions = _sessions().list_sessions()
    except OSError as e:
        _fail(f"Failed to list sessions: {e}")
        return
    for info in sessions:
        click.echo(f"{info.name:<20} {info.modified}")


@session.command("show")
@click.argument("name", required=False, callback=_session_name)
def session_show(name: Optional[str]):
    """Show the conversation for a session."""
    store = _sessions()
    name = name or store.last_name() or LAST_SESSION
    messages = store.load(name)
    if messages is None:
        console.print("Session not found")
        return

    console.print(f"[bold magenta]═══ Session: {name} ═══[/bold magenta]", justify="center")
    for message in messages:
        content = message.get("content")
        if not isinstance(content, str) or not content:
            continue
        if message["role"] == "user":
            console.print(Panel(content, title="User", title_align="right", border_style="cyan", expand=False))
        elif message["role"] == "assistant":
            console.print(Panel(Markdown(content), title="Assistant", title_align="left", border_style="green"))


@session.command("save")
@click.argument("name", callback=_session_name)
def session_save(name: str):
    """Save the last chat as a named session."""
    if name in RESERVED_NAMES:
        _fail(f"'{name}' is a reserved session name")
        return

    store = _sessions()
    messages = store.load(LAST_SESSION)
    if messages is None:
        _fail("No session to save")
        return
    try:
        store.save(name, messages)
    except (OSError, ValueError) as e:
        _fail(f"Failed to save session: {e}")
        return
    console.print(f"Saved session as {name}", highlight=False)


def main():
    cli()


if __name__ == "__main__":
    main()
