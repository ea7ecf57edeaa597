"""Command line interface for the AG-UI stream server and client."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from .client import HttpAgent, TransportError
from .config import load_settings
from .events import TextMessageContentEvent, TextMessageStartEvent
from .reducer import StreamReducer
from .schemas import Message, RunAgentInput
from .server import create_app


cli = typer.Typer(help="AG-UI event stream commands.")


@cli.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on."),
    events: Optional[Path] = typer.Option(None, "--events", help="JSON file with the event script to replay."),
    config: str = typer.Option("agui_stream.yaml", "--config", "-c", help="YAML settings file."),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload (development only)."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level for the app and uvicorn."),
) -> None:
    """Serve the scripted event stream using uvicorn."""
    server_config = load_settings(config).server
    overrides = {
        "host": host,
        "port": port,
        "events_path": events,
        "log_level": log_level,
    }
    server_config = server_config.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    app = create_app(server_config)
    uvicorn.run(
        app,
        host=server_config.host,
        port=server_config.port,
        reload=reload,
        log_level=server_config.log_level,
    )


@cli.command()
def run(
    message: str = typer.Argument(..., help="User message sent to the agent."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Server base URL."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Run endpoint path."),
    config: str = typer.Option("agui_stream.yaml", "--config", "-c", help="YAML settings file."),
) -> None:
    """Stream one run to stdout and print the reconstructed transcript."""
    settings = load_settings(config)
    client_config = settings.client.model_copy(
        update={k: v for k, v in {"base_url": base_url, "endpoint": endpoint}.items() if v is not None}
    )
    agent = HttpAgent.from_config(client_config)
    reducer = StreamReducer(settings.reducer)
    user_message = Message(id="user_cli", role="user", content=message)
    reducer.add_message(user_message)

    async def _consume() -> None:
        async for event in agent.stream(RunAgentInput(messages=[user_message])):
            reducer.handle_event(event)
            if isinstance(event, TextMessageStartEvent):
                typer.echo(f"\n[{event.role}] ", nl=False)
            elif isinstance(event, TextMessageContentEvent):
                typer.echo(event.delta, nl=False)

    try:
        asyncio.run(_consume())
    except TransportError as exc:
        typer.echo(f"\nError: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo("\n\n--- transcript ---")
    for entry in reducer.messages:
        typer.echo(f"{entry.role}: {entry.content}")
        for tool_call in entry.tool_calls or []:
            typer.echo(f"  -> {tool_call.name}({tool_call.arguments}) = {tool_call.result}")
    if reducer.last_error:
        typer.echo(f"run error: {reducer.last_error}", err=True)


def main() -> None:
    """Entrypoint executed via ``python -m agui_stream``."""
    cli()


if __name__ == "__main__":
    main()
