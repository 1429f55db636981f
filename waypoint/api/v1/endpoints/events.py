"""SSE and polling endpoints for a plan's live events."""

import asyncio
import logging
import time
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from waypoint.api.dependencies import get_access_guard, get_current_principal, get_event_bus
from waypoint.core.schemas.principal import Principal
from waypoint.core.services.access import AccessGuard
from waypoint.core.services.event_bus import MAX_SUBSCRIBERS, Event, EventBus

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 30.0


@router.get("/{plan_id}/events/stream")
async def stream_events(
    plan_id: UUID,
    since: float = Query(default=0, description="Unix timestamp; replay events after this time"),
    principal: Principal = Depends(get_current_principal),
    access: AccessGuard = Depends(get_access_guard),
    bus: EventBus = Depends(get_event_bus),
):
    """
    SSE endpoint for a plan's decision events.

    Pass `since` on reconnect to replay buffered events that were missed.
    """
    await access.require_read(plan_id, principal.id)
    if bus.subscriber_count(plan_id) >= MAX_SUBSCRIBERS:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Too many subscribers for this plan",
        )

    async def event_generator():
        queue = await bus.subscribe(plan_id)
        try:
            if since > 0:
                for event_dict in bus.get_events_since(plan_id, since):
                    yield Event(**event_dict).to_sse()

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                    yield event.to_sse()
                except asyncio.TimeoutError:
                    # Keepalive comment so proxies don't close an idle stream
                    yield ": keepalive\n\n"
        finally:
            await bus.unsubscribe(plan_id, queue)
            logger.info("Subscriber disconnected", extra={"plan_id": plan_id, "user_id": principal.id})

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{plan_id}/events/poll")
async def poll_events(
    plan_id: UUID,
    since: float = Query(default=0, description="Unix timestamp; return events after this time"),
    limit: int = Query(default=50, ge=1, le=200, description="Max events to return"),
    principal: Principal = Depends(get_current_principal),
    access: AccessGuard = Depends(get_access_guard),
    bus: EventBus = Depends(get_event_bus),
):
    """Polling endpoint for clients that can't hold a stream open."""
    await access.require_read(plan_id, principal.id)

    if since > 0:
        events = bus.get_events_since(plan_id, since)
    else:
        events = bus.get_recent_events(plan_id, limit=limit)

    return {
        "events": events[:limit],
        "count": len(events[:limit]),
        "server_time": time.time(),
    }
