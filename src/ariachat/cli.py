"""ariachat command line interface."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from typing import Annotated, Optional

import httpx
import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape

from ariachat.bootstrap import build_credentials, build_orchestrator
from ariachat.config import AriaSettings, load_settings
from ariachat.errors import ConfigurationError, SessionError, TurnError
from ariachat.logging_utils import configure_logging
from ariachat.providers import RestSessionProvider
from ariachat.turns.events import FinalResponse, Message, MessageRole, ToolCall, ToolResult, TurnOutputEvent

app = typer.Typer(name="ariachat", help="Stream conversation turns from the Aria runtime.", add_completion=False)
console = Console()
err_console = Console(stderr=True)

HostOption = Annotated[Optional[str], typer.Option("--host", help="Runtime host (ARIA_API_HOST)")]
PortOption = Annotated[Optional[int], typer.Option("--port", help="Runtime port (ARIA_API_PORT)")]
SchemeOption = Annotated[Optional[str], typer.Option("--scheme", help="http or https (ARIA_API_SCHEME)")]
LogLevelOption = Annotated[Optional[str], typer.Option("--log-level", help="Log level (ARIA_LOG_LEVEL)")]


def _settings(host: str | None, port: int | None, scheme: str | None, **extra: object) -> AriaSettings:
    try:
        settings = load_settings(api_host=host, api_port=port, api_scheme=scheme, **extra)
    except ConfigurationError as exc:
        err_console.print(f"[red]invalid settings:[/] {escape(str(exc))}")
        raise typer.Exit(2) from exc
    configure_logging(profile="cli", level=settings.log_level)
    return settings


def render_event(event: TurnOutputEvent) -> None:
    if isinstance(event, Message):
        if event.role is MessageRole.THOUGHT:
            console.print(f"[dim italic]{escape(event.content)}[/]")
        elif event.metadata is not None and event.metadata.message_type == "error":
            console.print(f"[red]{escape(event.content)}[/]")
        else:
            console.print(f"[bold]{event.role}[/]: {escape(event.content)}")
    elif isinstance(event, ToolCall):
        params = ", ".join(f"{key}={value}" for key, value in event.parameters.items())
        console.print(f"[cyan]→ {escape(event.tool_name)}[/]({escape(params)})")
    elif isinstance(event, ToolResult):
        status = "[green]ok[/]" if event.success else "[red]failed[/]"
        console.print(f"[cyan]← {escape(event.tool_name)}[/] {status}")
        console.print(escape(event.output), highlight=False)
    elif isinstance(event, FinalResponse):
        console.print(escape(event.content))


async def _run_turn(settings: AriaSettings, text: str, session_id: str | None) -> None:
    async with httpx.AsyncClient() as client:
        credentials = build_credentials(settings)
        sessions = RestSessionProvider.from_settings(settings, client, credentials=credentials)
        if session_id:
            sessions.use_session(session_id)
        orchestrator = build_orchestrator(settings, client=client, credentials=credentials, sessions=sessions)

        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, lambda: loop.create_task(orchestrator.cancel_current_turn()))
        try:
            await orchestrator.execute_turn(text, render_event)
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)
            await orchestrator.aclose()

    while not orchestrator.warnings.empty():
        warning = orchestrator.warnings.get_nowait()
        err_console.print(f"[yellow]warning:[/] {escape(str(warning))}")


@app.command("turn")
def turn(
    text: Annotated[str, typer.Argument(help="User input for this turn")],
    session: Annotated[Optional[str], typer.Option("--session", help="Reuse an existing session id")] = None,
    host: HostOption = None,
    port: PortOption = None,
    scheme: SchemeOption = None,
    fallback: Annotated[
        Optional[bool], typer.Option("--fallback/--no-fallback", help="Simulate a reply when offline")
    ] = None,
    log_level: LogLevelOption = None,
) -> None:
    """Run one turn and print the streamed events."""
    settings = _settings(host, port, scheme, fallback_enabled=fallback, log_level=log_level)
    try:
        asyncio.run(_run_turn(settings, text, session))
    except TurnError as exc:
        err_console.print(f"[red]error:[/] {escape(str(exc))}")
        raise typer.Exit(1) from exc


async def _create_session(settings: AriaSettings) -> str:
    async with httpx.AsyncClient() as client:
        sessions = RestSessionProvider.from_settings(settings, client, credentials=build_credentials(settings))
        record = await sessions.create_session()
    return record.id


@app.command("session")
def session(
    host: HostOption = None,
    port: PortOption = None,
    scheme: SchemeOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Create a new session and print its id."""
    settings = _settings(host, port, scheme, log_level=log_level)
    try:
        session_id = asyncio.run(_create_session(settings))
    except SessionError as exc:
        logger.debug("cli.session.error error={}", exc)
        err_console.print(f"[red]error:[/] {escape(str(exc))}")
        raise typer.Exit(1) from exc
    console.print(session_id)
