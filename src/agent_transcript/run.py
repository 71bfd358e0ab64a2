# run.py
# Entry point. Config, logging and command wiring only.
#
#   agent-transcript chat "Find recent papers on attention" --session abc123
#   agent-transcript history abc123
#   agent-transcript sessions

import asyncio
import logging

import httpx
import typer
from rich.logging import RichHandler

from agent_transcript import display
from agent_transcript.client import AgentClient, ApiError
from agent_transcript.config import ClientConfig
from agent_transcript.models import TranscriptSnapshot
from agent_transcript.session import ChatSession

app = typer.Typer(
    name="agent-transcript",
    help="Stream a ReACT agent's reasoning into a readable transcript.",
    add_completion=False,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=display.console, show_path=False)],
        force=True,
    )


class _EntryPrinter:
    """Prints entries as they are committed; reprints after a wholesale replace."""

    def __init__(self) -> None:
        self._printed = 0

    def __call__(self, snapshot: TranscriptSnapshot) -> None:
        if len(snapshot.entries) < self._printed:
            self._printed = 0
        display.print_entries(snapshot.entries[self._printed:])
        self._printed = len(snapshot.entries)


def _client(config: ClientConfig) -> AgentClient:
    return AgentClient(config.base_url, timeout=config.timeout)


async def _chat(config: ClientConfig, query: str, session_id: str | None) -> TranscriptSnapshot:
    async with _client(config) as client:
        session = ChatSession(
            client,
            config.identity,
            max_iterations=config.max_iterations,
            on_update=_EntryPrinter(),
        )
        if session_id:
            await session.open_session(session_id)
        return await session.send(query)


@app.command()
def chat(
    query: str = typer.Argument(..., help="Question for the agent."),
    session_id: str = typer.Option(None, "--session", "-s", help="Continue an existing session."),
    max_iterations: int = typer.Option(None, "--max-iterations", "-n", help="Reasoning cycles allowed."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Ask the agent a question and watch it think."""
    _configure_logging(verbose)
    config = ClientConfig.from_env()
    if max_iterations:
        config = config.model_copy(update={"max_iterations": max_iterations})

    snapshot = asyncio.run(_chat(config, query, session_id))
    if snapshot.session_id:
        display.console.print(f"[dim]session {snapshot.session_id}[/dim]")
    if snapshot.error:
        raise typer.Exit(code=1)


@app.command()
def history(
    session_id: str = typer.Argument(..., help="Session to load."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Print the stored transcript of a session."""
    _configure_logging(verbose)
    config = ClientConfig.from_env()

    async def load() -> TranscriptSnapshot:
        async with _client(config) as client:
            return await ChatSession(client, config.identity).open_session(session_id)

    snapshot = asyncio.run(load())
    display.print_snapshot(snapshot)
    if snapshot.error:
        raise typer.Exit(code=1)


@app.command()
def sessions(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """List the caller's sessions."""
    _configure_logging(verbose)
    config = ClientConfig.from_env()

    async def load():
        async with _client(config) as client:
            return await client.list_sessions(config.identity)

    try:
        found = asyncio.run(load())
    except (ApiError, httpx.HTTPError) as exc:
        display.halt(str(exc) or "Failed to get sessions")
        raise typer.Exit(code=1)
    display.print_sessions(found)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
