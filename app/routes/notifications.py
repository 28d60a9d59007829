from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from app.core.config import SSE_HEARTBEAT_SECONDS
from app.core.dependencies import get_broadcaster
from app.services.broadcaster import EventBroadcaster, Subscription, format_sse, sse_heartbeat

router = APIRouter(prefix="/events", tags=["events"])


async def event_stream(
    request: Request,
    events: EventBroadcaster,
    subscription: Subscription,
    heartbeat: float = SSE_HEARTBEAT_SECONDS,
):
    """Yield SSE frames on the event loop until the client leaves or is dropped."""
    try:
        yield ": connected\n\n"
        while not subscription.closed:
            if await request.is_disconnected():
                break
            event = await subscription.next_event(timeout=heartbeat)
            if event is not None:
                yield format_sse(event)
            elif not subscription.closed:
                yield sse_heartbeat()
    finally:
        events.unsubscribe(subscription)


@router.get("")
async def subscribe_events(request: Request, events: EventBroadcaster = Depends(get_broadcaster)):
    """Server-Sent Events stream of reservation, attendance and token updates."""
    subscription = events.subscribe()
    return StreamingResponse(
        event_stream(request, events, subscription),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
