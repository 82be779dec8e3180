import asyncio
import random
from typing import Callable, Awaitable
from loguru import logger
from datetime import datetime, timezone


def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Keys: events_received, status_updates, reconnect_count,
          bytes_received, last_event_at, connected_at.
    """
    return {
        "events_received": 0,
        "status_updates": 0,
        "reconnect_count": 0,
        "bytes_received": 0,
        "last_event_at": None,
        "connected_at": datetime.now(timezone.utc).isoformat()
    }


def backoff_delay(attempt: int, base_delay_s: float, max_delay_s: float) -> float:
    """Exponential backoff capped at `max_delay_s`, plus up to 10% jitter."""
    delay = min(base_delay_s * (2 ** attempt), max_delay_s)
    return delay + random.uniform(0, delay * 0.1)


async def with_reconnect(
    connect_fn: Callable[[], Awaitable[None]],
    stats: dict,
    duration_s: float,
    base_delay_s: float = 1.0,
    max_delay_s: float = 32.0,
    client_id: str = "unknown",
) -> None:
    """
    Wraps an async connect function with automatic reconnection until
    `duration_s` has elapsed.
    """
    import websockets
    attempt = 0
    loop = asyncio.get_running_loop()
    start_time = loop.time()

    while True:
        elapsed = loop.time() - start_time
        if elapsed >= duration_s:
            break

        try:
            remaining = duration_s - elapsed
            await asyncio.wait_for(connect_fn(), timeout=remaining)
            attempt = 0
        except asyncio.TimeoutError:
            break
        except (ConnectionError, OSError, websockets.WebSocketException) as e:
            attempt += 1
            delay = backoff_delay(attempt, base_delay_s, max_delay_s)
            stats["reconnect_count"] += 1
            logger.warning(
                f"client_id={client_id} attempt={attempt} "
                f"delay={delay:.2f}s error={e}"
            )
            remaining = duration_s - (loop.time() - start_time)
            if remaining > 0:
                try:
                    await asyncio.wait_for(asyncio.sleep(delay), timeout=remaining)
                except asyncio.TimeoutError:
                    break
