"""
MODULE OVERVIEW:
The WebSocket observer route.

WHAT IS HAPPENING HERE:
Upgrades the HTTP request to a WebSocket and subscribes it to the broadcaster.
A background task forwards the observer's feed (initial_data first, then live
events and idle heartbeats) while the foreground loop only reads, so a client
disconnect is noticed immediately.
"""
import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from loguru import logger

from notify_shared.route_utils import extract_client_id, log_connection, observer_events

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    client_id: str | None = Query(None)
):
    pipeline = websocket.app.state.pipeline
    heartbeat_s = websocket.app.state.settings.WS_HEARTBEAT_INTERVAL_S
    cid = await extract_client_id(client_id)

    await websocket.accept()
    observer = pipeline.subscribe(cid, transport="websocket")
    await log_connection("websocket:connect", cid, {"key": observer.key})

    async def forward() -> None:
        async for event in observer_events(observer.queue, heartbeat_s):
            try:
                await websocket.send_text(event.model_dump_json(by_alias=True))
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"client_id={cid} protocol=websocket event=send_failed reason='{e}'")
                return

    forward_task = asyncio.create_task(forward())

    try:
        while True:
            text_data = await websocket.receive_text()
            logger.debug(f"client_id={cid} protocol=websocket event=client_frame data={text_data}")
    except WebSocketDisconnect:
        pass
    finally:
        forward_task.cancel()
        await asyncio.gather(forward_task, return_exceptions=True)
        pipeline.unsubscribe(observer)
        await log_connection("websocket:disconnect", cid, {"key": observer.key})
