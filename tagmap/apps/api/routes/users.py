from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from tagmap.apps.api.deps import get_caller, get_services
from tagmap.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tagmap.apps.api.response import SuccessEnvelope, success_response
from tagmap.apps.api.routes.tags import TagPageResponse, page_to_response
from tagmap.domain.schemas import Caller, PageParams
from tagmap.services.container import Services


router = APIRouter(tags=["users"], responses=DEFAULT_ERROR_RESPONSES)


class GuideResponse(BaseModel):
    has_read_guide: bool


@router.get("/users/{uid}/tags", response_model=SuccessEnvelope[TagPageResponse])
async def user_history(
    request: Request,
    uid: str,
    cursor: str | None = Query(default=None),
    page_size: int | None = Query(default=None),
    services: Services = Depends(get_services),
) -> dict:
    # Includes archived tags: this is the author's full contribution record.
    page = await services.listing.get_user_history(
        uid, PageParams(cursor=cursor, page_size=page_size)
    )
    return success_response(request=request, data=await page_to_response(services, page))


@router.get("/me/guide", response_model=SuccessEnvelope[GuideResponse])
async def get_guide_flag(
    request: Request,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    has_read = await services.users.has_read_guide(caller)
    return success_response(request=request, data=GuideResponse(has_read_guide=has_read))


@router.post("/me/guide", response_model=SuccessEnvelope[GuideResponse])
async def mark_guide_read(
    request: Request,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    has_read = await services.users.mark_guide_read(caller)
    return success_response(request=request, data=GuideResponse(has_read_guide=has_read))
