from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..engine import error_message
from ..errors import UpstreamError
from ..events import EventStreamResponse
from ..service import DashboardService, get_dashboard_service


router = APIRouter(tags=["events"])
logger = logging.getLogger(__name__)


@router.get("/events", response_class=EventStreamResponse)
async def stream_events(svc: DashboardService = Depends(get_dashboard_service)) -> EventStreamResponse:
    """Live engine events for every configured event source.

    Frames: `data: {"queue", "event", "payload"}`; a `: heartbeat` comment is sent on a fixed
    interval so idle proxies keep the connection open.
    """
    try:
        connection = svc.multiplexer.open()
    except Exception as e:
        # Handlers registered before the failure were already removed by the connection.
        logger.warning("queuedash_sse_subscribe_failed error=%s", e)
        raise UpstreamError(error_message(e)) from e
    return EventStreamResponse(connection)
