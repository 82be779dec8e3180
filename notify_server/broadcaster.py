"""
MODULE OVERVIEW:
The Event Broadcaster: the fan-out hub between the pipeline and every
connected real-time observer.

WHAT IS HAPPENING HERE:
Each observer (a WebSocket or an SSE stream) gets its own bounded
asyncio.Queue. `publish()` walks the observer set and `put_nowait`s the event
into every queue, so it never awaits anyone: a slow observer only loses its own
events once its buffer is full, and everybody else keeps receiving theirs.

Observers are registered under a server-generated key, never under the
client-supplied id: two tabs sending the same `client_id` are two observers,
and closing one of them leaves the other subscribed.

The very first item placed in a new observer's queue is an `initial_data`
snapshot, enqueued under the same lock that guards registration, so no later
event can overtake it.
"""

import asyncio
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict
from datetime import datetime, timezone
from loguru import logger

from notify_shared.models import (
    InitialDataEvent,
    LifecycleStatus,
    MessageStatusUpdateEvent,
    ObserverStats,
    QueueStats,
    QueueStatsEvent,
    StatusUpdateEvent,
    SystemEvent,
)


@dataclass
class Observer:
    """One live connection. Routes hold on to it and hand it back to unsubscribe."""
    client_id: str
    transport: str
    queue: asyncio.Queue
    key: str = field(default_factory=lambda: uuid.uuid4().hex)


class EventBroadcaster:
    def __init__(self, snapshot_fn: Callable[[], InitialDataEvent], queue_size: int = 100):
        self._snapshot_fn = snapshot_fn
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._observers: Dict[str, Observer] = {}

        self.total_events_dispatched = 0
        self.dropped_events = 0
        self.startup_time = datetime.now(timezone.utc)

    # ==========================
    # OBSERVER MANAGEMENT
    # ==========================
    def subscribe(self, client_id: str, transport: str = "websocket") -> Observer:
        observer = Observer(
            client_id=client_id,
            transport=transport,
            queue=asyncio.Queue(maxsize=self._queue_size),
        )
        with self._lock:
            observer.queue.put_nowait(self._snapshot_fn())
            self._observers[observer.key] = observer
        logger.info(f"client_id={client_id} protocol={transport} key={observer.key} event=connect reason=subscribed")
        return observer

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            removed = self._observers.pop(observer.key, None)
        if removed is not None:
            logger.info(
                f"client_id={removed.client_id} protocol={removed.transport} "
                f"key={removed.key} event=disconnect reason=cleanup"
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)

    # ==========================
    # CENTRAL FAN-OUT
    # ==========================
    def publish(self, event) -> None:
        with self._lock:
            self.total_events_dispatched += 1
            observers = list(self._observers.values())

        for observer in observers:
            try:
                observer.queue.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped_events += 1
                logger.warning(
                    f"client_id={observer.client_id} protocol={observer.transport} "
                    f"event=dropped type={event.type} reason=queue_full"
                )

    def emit_status_update(self, notification_id: str, status: LifecycleStatus) -> None:
        self.publish(StatusUpdateEvent(notification_id=notification_id, status=status))

    def emit_message_status_update(self, mensagem_id: str, status: LifecycleStatus) -> None:
        self.publish(MessageStatusUpdateEvent(mensagem_id=mensagem_id, status=status))

    def emit_queue_stats(self, stats: QueueStats) -> None:
        self.publish(QueueStatsEvent(stats=stats))

    def emit_system_event(self, event: str, details: str) -> None:
        logger.info(f"event=system name={event} details='{details}'")
        self.publish(SystemEvent(event=event, details=details))

    # ==========================
    # METRICS
    # ==========================
    def get_stats(self) -> ObserverStats:
        with self._lock:
            transports = [o.transport for o in self._observers.values()]
        return ObserverStats(
            active_ws=transports.count("websocket"),
            active_sse=transports.count("sse"),
            total_events_dispatched=self.total_events_dispatched,
            dropped_events=self.dropped_events,
            uptime_s=(datetime.now(timezone.utc) - self.startup_time).total_seconds(),
            server_time=datetime.now(timezone.utc)
        )
