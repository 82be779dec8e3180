"""
CLI entrypoint for the notification pipeline.
"""
import sys
import uuid
import asyncio

import httpx
import typer
from loguru import logger

from notify_client.visualizer import Dashboard
from notify_client.websocket_client import WebSocketObserver
from notify_shared.config import settings

app = typer.Typer(help="Asynchronous notification pipeline CLI")


def _base_url() -> str:
    return f"http://127.0.0.1:{settings.PORT}"


def _exit_on_error(resp: httpx.Response) -> None:
    if resp.is_error:
        typer.echo(f"HTTP {resp.status_code}: {resp.text}", err=True)
        raise typer.Exit(1)


@app.command()
def server():
    """Start the FastAPI backend server using Uvicorn."""
    import uvicorn
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())
    typer.echo(f"Starting server on port {settings.PORT}...")
    uvicorn.run("notify_server.main:app", host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


@app.command()
def notify(
    content: str = typer.Argument(..., help="Message content"),
    mensagem_id: str = typer.Option(None, "--id", help="Message id (generated when omitted)"),
):
    """Publish a direct message through /api/notificar."""
    payload = {"mensagemId": mensagem_id or str(uuid.uuid4()), "conteudoMensagem": content}
    resp = httpx.post(f"{_base_url()}/api/notificar", json=payload)
    _exit_on_error(resp)
    typer.echo(resp.json())


@app.command()
def status(mensagem_id: str = typer.Argument(None, help="Message id; all messages when omitted")):
    """Query the status of one message or of every tracked message."""
    path = f"/api/status/{mensagem_id}" if mensagem_id else "/api/status"
    resp = httpx.get(f"{_base_url()}{path}")
    _exit_on_error(resp)
    typer.echo(resp.json())


@app.command()
def stats():
    """Query queue statistics and observer stats."""
    queue = httpx.get(f"{_base_url()}/api/queue/stats")
    _exit_on_error(queue)
    observers = httpx.get(f"{_base_url()}/stats")
    _exit_on_error(observers)
    typer.echo({"queue": queue.json(), "observers": observers.json()})


@app.command()
def watch(duration: float = typer.Option(300.0, help="How long to watch, in seconds")):
    """Open the live dashboard over the WebSocket observer channel."""
    client = WebSocketObserver(f"cli-{str(uuid.uuid4())[:4]}", _base_url())
    dashboard = Dashboard(client)
    try:
        asyncio.run(dashboard.run(duration))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    app()
