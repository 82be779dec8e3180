import uuid
import asyncio
from typing import AsyncGenerator
from fastapi import Request
from loguru import logger

from notify_shared.models import HeartbeatEvent


async def extract_client_id(client_id: str | None) -> str:
    """
    If the caller provided a client_id, use it.
    If not, generate a short readable one like 'client-a3f2'.
    """
    if client_id:
        return client_id
    return f"client-{str(uuid.uuid4())[:4]}"


async def log_connection(protocol: str, client_id: str, extra: dict | None = None) -> None:
    """Single structured log entry, written on connect and on disconnect."""
    log_str = f"protocol={protocol} client_id={client_id}"
    for k, v in (extra or {}).items():
        log_str += f" {k}={v}"
    logger.info(log_str)


def get_pipeline(request: Request):
    return request.app.state.pipeline


async def observer_events(
    queue: asyncio.Queue,
    heartbeat_interval_s: float = 15.0,
) -> AsyncGenerator:
    """
    The universal server-side observer feed.

    Yields whatever the broadcaster put in the observer's queue, in order.
    When nothing arrives for `heartbeat_interval_s` seconds, yields a
    heartbeat instead so proxies and clients can tell the stream is alive.
    Ends when the consuming task is cancelled (client disconnect).
    """
    while True:
        try:
            yield await asyncio.wait_for(queue.get(), timeout=heartbeat_interval_s)
        except asyncio.TimeoutError:
            yield HeartbeatEvent()
