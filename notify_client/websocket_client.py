"""
MODULE OVERVIEW:
The WebSocket observer client.

WHAT IS HAPPENING HERE:
We use the `websockets` library to hold a connection to `/ws`. The first frame
is always the `initial_data` snapshot; after that come status updates, queue
statistics, system events and idle heartbeats. Frames that do not parse as a
known broadcast event are counted and skipped, never fatal.
"""

import websockets
from loguru import logger
from pydantic import ValidationError

from notify_client.base_client import BaseObserverClient


class WebSocketObserver(BaseObserverClient):
    protocol_name: str = "websocket"

    def __init__(self, client_id: str, server_base_url: str):
        super().__init__(client_id, server_base_url)
        ws_base = self.server_base_url.replace('http://', 'ws://').replace('https://', 'wss://')
        self.ws_url = f"{ws_base}/ws?client_id={self.client_id}"
        self.invalid_frames = 0

    async def disconnect(self) -> None:
        pass

    async def connect(self) -> None:
        async with websockets.connect(self.ws_url) as ws:
            await self._emit_status("ACTIVE")
            async for message in ws:
                try:
                    await self.on_frame(message)
                except ValidationError as e:
                    self.invalid_frames += 1
                    logger.debug(f"client_id={self.client_id} event=invalid_frame reason='{e.errors()[0]['msg']}'")
