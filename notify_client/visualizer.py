"""
MODULE OVERVIEW:
The Rich terminal dashboard for the notification pipeline.

WHAT IS HAPPENING HERE:
It runs the observer client in the background and rebuilds the layout on every
refresh: a live feed of status transitions, the latest queue statistics
pushed by the server, and the connection timeline.
"""

from rich.live import Live
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from collections import deque
from datetime import datetime
import asyncio

from notify_client.base_client import BaseObserverClient
from notify_shared.models import (
    InitialDataEvent,
    LifecycleStatus,
    MessageStatusUpdateEvent,
    QueueStats,
    QueueStatsEvent,
    StatusUpdateEvent,
    SystemEvent,
)

STATUS_STYLE = {
    LifecycleStatus.PENDING: "white",
    LifecycleStatus.PROCESSING: "yellow",
    LifecycleStatus.COMPLETED: "green",
    LifecycleStatus.FAILED: "red",
}


class Dashboard:
    def __init__(self, client: BaseObserverClient):
        self.client = client
        self.recent_events = deque(maxlen=15)
        self.status = "INITIALIZING"
        self.timeline = deque(maxlen=6)
        self.queue_stats = QueueStats()

    def on_status_change(self, status: str):
        self.status = status
        ts = datetime.now().strftime("%H:%M:%S")
        self.timeline.appendleft(f"[{ts}] State: {status}")

    def on_event(self, event):
        ts = datetime.now().strftime("%H:%M:%S")
        if isinstance(event, InitialDataEvent):
            self.queue_stats = event.queue_stats
            self.timeline.appendleft(f"[{ts}] Snapshot: {len(event.statuses)} tracked")
        elif isinstance(event, QueueStatsEvent):
            self.queue_stats = event.stats
        elif isinstance(event, StatusUpdateEvent):
            self.recent_events.appendleft((ts, "record", event.notification_id, event.status))
        elif isinstance(event, MessageStatusUpdateEvent):
            self.recent_events.appendleft((ts, "direct", event.mensagem_id, event.status))
        elif isinstance(event, SystemEvent):
            self.timeline.appendleft(f"[{ts}] {event.event}: {event.details}")

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="queue"),
            Layout(name="connection"),
            Layout(name="timeline")
        )

        color = "green" if "ACTIVE" in self.status else "red" if "CLOSED" in self.status else "yellow"
        target = getattr(self.client, "ws_url", self.client.server_base_url)
        layout["header"].update(Panel(f"[{color} bold]Observer: {target} | Status: {self.status}[/]", style=color))

        table = Table(title="Status Feed", expand=True)
        table.add_column("Time", justify="left", style="cyan", no_wrap=True)
        table.add_column("Flow", style="magenta")
        table.add_column("Id", style="white")
        table.add_column("Status")

        for ts, flow, identifier, status in self.recent_events:
            table.add_row(ts, flow, identifier, f"[{STATUS_STYLE[status]}]{status.value}[/]")

        layout["left"].update(Panel(table, title="Feed"))

        s = self.queue_stats
        queue_text = (
            f"Pending:    {s.pending}\n"
            f"Processing: [yellow]{s.processing}[/]\n"
            f"Completed:  [green]{s.completed}[/]\n"
            f"Failed:     [red]{s.failed}[/]\n"
            f"Total:      {s.total}"
        )
        layout["queue"].update(Panel(queue_text, title="Queue"))

        connection_text = (
            f"Events Received: {self.client.events_received}\n"
            f"Status Updates: {self.client.status_updates}\n"
            f"Reconnects: {self.client.reconnect_count}"
        )
        layout["connection"].update(Panel(connection_text, title="Connection"))

        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))

        return layout

    async def run(self, duration_s: float):
        async def event_hook(e): self.on_event(e)
        async def status_hook(s): self.on_status_change(s)

        self.client.set_callbacks(event_hook, status_hook)

        client_task = asyncio.create_task(self.client.run(duration_s))

        with Live(self.generate_layout(), refresh_per_second=4) as live:
            while not client_task.done():
                live.update(self.generate_layout())
                await asyncio.sleep(0.25)
