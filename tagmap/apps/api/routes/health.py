from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from tagmap.apps.api.deps import get_services
from tagmap.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tagmap.apps.api.response import SuccessEnvelope, success_response
from tagmap.domain.events import Topic
from tagmap.persistence.db import pool_stats
from tagmap.services import telemetry
from tagmap.services.container import Services

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    archived_threshold: int
    subscribers: dict[str, int]
    db_pool: dict[str, int | None]
    counters: dict[str, int]
    requests_5m: int
    error_rate_5m: float | None = None


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request, services: Services = Depends(get_services)) -> dict:
    # Process-local view only; no database round trip so liveness checks stay cheap.
    snapshot = telemetry.snapshot()
    payload = HealthResponse(
        status="ok",
        archived_threshold=services.threshold.get(),
        subscribers={topic.value: services.bus.subscriber_count(topic) for topic in Topic},
        db_pool=pool_stats(services.engine),
        counters=dict(snapshot["counters"]),
        requests_5m=telemetry.request_count(300),
        error_rate_5m=telemetry.error_rate(300),
    )
    return success_response(request=request, data=payload)
