"""Owner-facing endpoints: ringing poll and the realtime event stream."""
import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from platecall.core.config import settings
from platecall.core.dependencies import get_call_event_hub, get_session_manager
from platecall.services.call_session.manager import CallSessionManager
from platecall.services.call_session.models import CallSessionView
from platecall.services.notifications.hub import CallEventHub, format_sse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/api/owners/{owner_id}/calls/ringing")
async def get_ringing_call(
    owner_id: str,
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """Newest ringing call inside the staleness window, for the poll fallback."""
    call = await session_manager.get_fresh_ringing(owner_id)
    logger.debug(f"[OWNER POLL] owner {owner_id}: {call.id if call else 'none'}")
    return {"ok": True, "call": CallSessionView.model_validate(call) if call else None}


@router.get("/api/owners/{owner_id}/calls/events")
async def stream_call_events(
    request: Request,
    owner_id: str,
    hub: CallEventHub = Depends(get_call_event_hub),
) -> StreamingResponse:
    """Stream INSERT and UPDATE events for the owner's calls via Server-Sent Events."""
    logger.info(
        f"[OWNER EVENTS] Stream opened - owner: {owner_id}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    async def event_generator():
        heartbeat_interval = settings.sse_heartbeat_seconds
        async with hub.subscribe(owner_id) as queue:
            yield ": subscribed\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
                except asyncio.TimeoutError:
                    yield ": heartbeat\n\n"
                    continue
                yield format_sse(event)
        logger.info(f"[OWNER EVENTS] Stream closed - owner: {owner_id}")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
