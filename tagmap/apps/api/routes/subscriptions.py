from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, AsyncGenerator, Protocol

from fastapi import APIRouter, Depends, Query, Request
from starlette.responses import StreamingResponse

from tagmap.apps.api.deps import get_services
from tagmap.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tagmap.domain.events import Topic
from tagmap.services.container import Services
from tagmap.services.notifications import Subscription


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"], responses=DEFAULT_ERROR_RESPONSES)

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Content-Type": "text/event-stream",
    "Connection": "keep-alive",
}


class DisconnectProbe(Protocol):
    async def is_disconnected(self) -> bool:
        ...


def _sse_message(payload: dict[str, Any]) -> str:
    # SSE framing invariants: event name must be "message" and data must be a compact JSON line.
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"event: message\ndata: {data}\n\n"


def _sse_comment(text: str) -> str:
    # Comment lines keep proxies from closing idle streams; clients ignore them.
    return f": {text}\n\n"


async def event_stream(
    subscription: Subscription,
    request: DisconnectProbe,
    *,
    heartbeat_s: float,
) -> AsyncGenerator[str, None]:
    """Relay bus events as SSE frames until the client leaves or the bus closes."""
    try:
        yield _sse_comment("subscribed")
        while True:
            if await request.is_disconnected():
                return
            try:
                event = await subscription.next(timeout=heartbeat_s)
            except StopAsyncIteration:
                return
            if event is None:
                yield _sse_comment("heartbeat")
                continue
            yield _sse_message({"type": event.topic.value, "data": event.to_payload()})
    finally:
        # Drop the registration even when the stream task is cancelled mid-await.
        subscription.close()
        logger.debug("subscription_closed topic=%s dropped=%s", subscription.topic.value, subscription.dropped)


@router.get("/archived-threshold")
async def archived_threshold_changes(
    request: Request,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    # Subscribe before the response starts so no change between handshake and first read is lost.
    subscription = services.bus.subscribe(Topic.ARCHIVED_THRESHOLD_CHANGED)
    return StreamingResponse(
        event_stream(subscription, request, heartbeat_s=services.settings.sse_heartbeat_s),
        headers=_SSE_HEADERS,
        media_type="text/event-stream",
    )


@router.get("/tag-changes")
async def tag_changes(
    request: Request,
    after: datetime | None = Query(default=None, description="Only events strictly later than this instant"),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    subscription = services.bus.subscribe(Topic.TAG_STATUS_CHANGED, after=after)
    return StreamingResponse(
        event_stream(subscription, request, heartbeat_s=services.settings.sse_heartbeat_s),
        headers=_SSE_HEADERS,
        media_type="text/event-stream",
    )
