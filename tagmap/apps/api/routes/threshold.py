from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from tagmap.apps.api.deps import get_caller, get_services
from tagmap.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tagmap.apps.api.response import SuccessEnvelope, success_response
from tagmap.domain.schemas import Caller
from tagmap.services.container import Services


router = APIRouter(prefix="/archived-threshold", tags=["threshold"], responses=DEFAULT_ERROR_RESPONSES)


class ThresholdResponse(BaseModel):
    value: int


class ThresholdUpdateRequest(BaseModel):
    # Range is checked by ArchivedThreshold so the error matches direct callers.
    value: int

    model_config = {"extra": "forbid"}


@router.get("", response_model=SuccessEnvelope[ThresholdResponse])
async def get_threshold(request: Request, services: Services = Depends(get_services)) -> dict:
    return success_response(request=request, data=ThresholdResponse(value=services.threshold.get()))


@router.put("", response_model=SuccessEnvelope[ThresholdResponse])
async def set_threshold(
    request: Request,
    payload: ThresholdUpdateRequest,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    value = services.threshold.set(payload.value, author=caller)
    return success_response(request=request, data=ThresholdResponse(value=value))
