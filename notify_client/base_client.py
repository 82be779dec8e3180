from abc import ABC, abstractmethod
import asyncio
from datetime import datetime, timezone
from typing import Callable, Awaitable

from pydantic import TypeAdapter

from notify_shared.client_utils import make_client_stats, with_reconnect
from notify_shared.models import BroadcastEvent, MessageStatusUpdateEvent, StatusUpdateEvent

event_adapter = TypeAdapter(BroadcastEvent)


class BaseObserverClient(ABC):
    protocol_name: str = "unknown"

    def __init__(self, client_id: str, server_base_url: str):
        self.client_id = client_id
        self.server_base_url = server_base_url.rstrip('/')

        self.on_event_callback: Callable[[object], Awaitable[None]] | None = None
        self.on_status_change_callback: Callable[[str], Awaitable[None]] | None = None

        self.stats = make_client_stats()
        self._is_running = False

    @property
    def events_received(self): return self.stats["events_received"]

    @property
    def status_updates(self): return self.stats["status_updates"]

    @property
    def reconnect_count(self): return self.stats["reconnect_count"]

    def set_callbacks(self, on_event, on_status_change):
        self.on_event_callback = on_event
        self.on_status_change_callback = on_status_change

    async def _emit_status(self, status: str):
        if self.on_status_change_callback:
            await self.on_status_change_callback(status)

    async def on_frame(self, raw: str) -> None:
        """Parse one server frame and hand it to the registered callback."""
        event = event_adapter.validate_json(raw)
        self.stats["events_received"] += 1
        self.stats["bytes_received"] += len(raw)
        self.stats["last_event_at"] = datetime.now(timezone.utc).isoformat()
        if isinstance(event, (StatusUpdateEvent, MessageStatusUpdateEvent)):
            self.stats["status_updates"] += 1
        if self.on_event_callback:
            await self.on_event_callback(event)

    @abstractmethod
    async def connect(self) -> None:
        """The actual protocol loop runs here."""

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    async def run(self, duration_s: float = 60.0) -> None:
        self._is_running = True
        try:
            await with_reconnect(
                self.connect,
                self.stats,
                duration_s,
                client_id=self.client_id
            )
        except asyncio.CancelledError:
            pass
        finally:
            self._is_running = False
            await self.disconnect()
            await self._emit_status("CLOSED")
