"""
MODULE OVERVIEW:
The Server-Sent Events observer route: the same feed as /ws, one-way over HTTP.

WHAT IS HAPPENING HERE:
The subscription is taken inside the generator, not in the route body. A client
that disconnects before the first chunk is sent never registers an observer,
and once registered the `finally` always removes it.
"""
from fastapi import APIRouter, Query, Request
from sse_starlette.sse import EventSourceResponse

from notify_shared.route_utils import extract_client_id, log_connection, observer_events

router = APIRouter()


async def sse_feed(pipeline, client_id: str, heartbeat_interval_s: float):
    observer = pipeline.subscribe(client_id, transport="sse")
    await log_connection("sse:connect", client_id, {"key": observer.key})
    try:
        async for event in observer_events(observer.queue, heartbeat_interval_s):
            yield {
                "event": event.type,
                "data": event.model_dump_json(by_alias=True),
            }
    finally:
        pipeline.unsubscribe(observer)
        await log_connection("sse:disconnect", client_id, {"key": observer.key})


@router.get("/sse/stream")
async def sse_endpoint(request: Request, client_id: str | None = Query(None)):
    pipeline = request.app.state.pipeline
    heartbeat_s = request.app.state.settings.SSE_HEARTBEAT_INTERVAL_S
    cid = await extract_client_id(client_id)
    return EventSourceResponse(sse_feed(pipeline, cid, heartbeat_s))
