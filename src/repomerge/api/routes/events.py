"""Server-Sent Events (SSE) endpoint."""

import asyncio
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from repomerge.api.dependencies import EventManagerDep

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/stream")
async def event_stream(
    event_manager: EventManagerDep,
    user_id: str | None = Query(default=None, description="Filter by user ID"),
) -> StreamingResponse:
    """Subscribe to run events.

    Events are filtered by user_id if provided. A heartbeat is sent when no
    event arrived within the heartbeat interval.
    """
    subscriber = event_manager.subscribe(user_id)

    async def generate() -> AsyncGenerator[str, None]:
        try:
            while True:
                try:
                    event = await asyncio.wait_for(
                        subscriber.queue.get(),
                        timeout=event_manager._heartbeat_interval,
                    )
                    yield event.to_sse()
                except TimeoutError:
                    yield event_manager.create_heartbeat_event().to_sse()
        except asyncio.CancelledError:
            # Client disconnected
            pass
        finally:
            event_manager.unsubscribe(subscriber.id)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
