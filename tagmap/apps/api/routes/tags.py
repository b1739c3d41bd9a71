from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from tagmap.apps.api.deps import get_caller, get_services
from tagmap.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tagmap.apps.api.response import SuccessEnvelope, success_response
from tagmap.domain.models import Tag, TagStatusRecord, as_utc
from tagmap.domain.schemas import Caller, NewTagInput, PageParams, TagPatch
from tagmap.domain.views import TagPage, TagView, TagWriteResult
from tagmap.services.container import Services


router = APIRouter(prefix="/tags", tags=["tags"], responses=DEFAULT_ERROR_RESPONSES)


class StatusRecordResponse(BaseModel):
    id: int
    status_name: str
    created_at: str
    created_by: str
    created_by_name: str
    description: str | None = None
    number_of_up_vote: int | None = None
    has_up_vote: bool


class CategoryResponse(BaseModel):
    mission_name: str
    sub_type_name: str | None = None
    target_name: str | None = None


class CoordinatesResponse(BaseModel):
    # Echoed as decimal strings, the shape map clients send.
    latitude: str
    longitude: str


class TagResponse(BaseModel):
    id: str
    location_name: str
    accessibility: float | None = None
    category: CategoryResponse
    coordinates: CoordinatesResponse
    floor: int | None = None
    description: str
    street_view_info: dict[str, Any] | None = None
    image_urls: list[str]
    view_count: int
    created_by: str
    created_by_name: str
    created_at: str
    updated_at: str
    status: StatusRecordResponse
    status_history: list[StatusRecordResponse]


class TagPageResponse(BaseModel):
    items: list[TagResponse]
    next_cursor: str | None = None


class TagWriteResponse(BaseModel):
    tag: TagResponse
    image_upload_number: int
    image_upload_urls: list[str]
    image_delete_status: bool | None = None


class SetStatusRequest(BaseModel):
    status_name: str = Field(min_length=1)
    description: str | None = None
    has_number_of_up_vote: bool = False

    model_config = {"extra": "forbid"}


class VoteRequest(BaseModel):
    action: str = Field(examples=["upvote", "retract"])

    model_config = {"extra": "forbid"}


class VoteSummaryResponse(BaseModel):
    tag_id: str
    number_of_up_vote: int
    has_up_voted: bool


class VoteResponse(VoteSummaryResponse):
    # Present only when the vote moved the tag along the promotion path.
    status_change: StatusRecordResponse | None = None


class VoteResetResponse(BaseModel):
    tag_id: str
    cleared: int


class ViewCountResponse(BaseModel):
    tag_id: str
    accepted: bool


def _author_uids(views: Iterable[TagView]) -> set[str]:
    uids: set[str] = set()
    for view in views:
        uids.add(view.tag.created_by)
        uids.add(view.status.created_by)
        uids.update(record.created_by for record in view.history)
    return uids


async def resolve_author_names(services: Services, views: Iterable[TagView]) -> dict[str, str]:
    # One directory lookup per response, however many tags and records it carries.
    return await services.users.display_names(_author_uids(views))


def status_to_response(record: TagStatusRecord, names: Mapping[str, str]) -> StatusRecordResponse:
    return StatusRecordResponse(
        id=record.id,
        status_name=record.status_name,
        created_at=as_utc(record.created_at).isoformat(),
        created_by=record.created_by,
        created_by_name=names.get(record.created_by, record.created_by),
        description=record.description,
        number_of_up_vote=record.number_of_up_vote,
        has_up_vote=record.has_up_vote,
    )


def tag_to_response(view: TagView, names: Mapping[str, str]) -> TagResponse:
    tag: Tag = view.tag
    return TagResponse(
        id=tag.id,
        location_name=tag.location_name,
        accessibility=tag.accessibility,
        category=CategoryResponse(
            mission_name=tag.mission_name,
            sub_type_name=tag.sub_type_name,
            target_name=tag.target_name,
        ),
        coordinates=CoordinatesResponse(latitude=str(tag.latitude), longitude=str(tag.longitude)),
        floor=tag.floor,
        description=tag.description or "",
        street_view_info=tag.street_view_json,
        image_urls=list(tag.image_urls_json or []),
        view_count=tag.view_count,
        created_by=tag.created_by,
        created_by_name=names.get(tag.created_by, tag.created_by),
        created_at=as_utc(tag.created_at).isoformat(),
        updated_at=as_utc(tag.updated_at).isoformat(),
        status=status_to_response(view.status, names),
        status_history=[status_to_response(record, names) for record in view.history],
    )


async def page_to_response(services: Services, page: TagPage) -> TagPageResponse:
    names = await resolve_author_names(services, page.items)
    return TagPageResponse(
        items=[tag_to_response(view, names) for view in page.items],
        next_cursor=page.next_cursor,
    )


async def write_to_response(services: Services, result: TagWriteResult) -> TagWriteResponse:
    names = await resolve_author_names(services, [result.view])
    return TagWriteResponse(
        tag=tag_to_response(result.view, names),
        image_upload_number=result.image_upload_number,
        image_upload_urls=list(result.image_upload_urls),
        image_delete_status=result.image_delete_status,
    )


async def record_to_response(services: Services, record: TagStatusRecord) -> StatusRecordResponse:
    names = await services.users.display_names([record.created_by])
    return status_to_response(record, names)


@router.get("", response_model=SuccessEnvelope[TagPageResponse])
async def list_tags(
    request: Request,
    cursor: str | None = Query(default=None),
    page_size: int | None = Query(default=None),
    sort: str | None = Query(default=None, examples=["-created_at", "-status_changed_at"]),
    services: Services = Depends(get_services),
) -> dict:
    # Range checks on page_size live in the listing service so direct callers get them too.
    page = await services.listing.list_unarchived(
        PageParams(cursor=cursor, page_size=page_size), sort=sort
    )
    return success_response(request=request, data=await page_to_response(services, page))


@router.post("", status_code=201, response_model=SuccessEnvelope[TagWriteResponse])
async def create_tag(
    request: Request,
    payload: NewTagInput,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    result = await services.lifecycle.create_tag(payload, caller)
    await services.users.remember_caller(caller)
    return success_response(request=request, data=await write_to_response(services, result))


@router.get("/{tag_id}", response_model=SuccessEnvelope[TagResponse])
async def get_tag(
    request: Request,
    tag_id: str,
    services: Services = Depends(get_services),
) -> dict:
    view = await services.lifecycle.get_tag(tag_id)
    names = await resolve_author_names(services, [view])
    return success_response(request=request, data=tag_to_response(view, names))


@router.patch("/{tag_id}", response_model=SuccessEnvelope[TagWriteResponse])
async def update_tag(
    request: Request,
    tag_id: str,
    payload: TagPatch,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    result = await services.lifecycle.update_tag(tag_id, payload, caller)
    return success_response(request=request, data=await write_to_response(services, result))


@router.post("/{tag_id}/status", status_code=201, response_model=SuccessEnvelope[StatusRecordResponse])
async def set_status(
    request: Request,
    tag_id: str,
    payload: SetStatusRequest,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    record = await services.lifecycle.set_status(
        tag_id,
        payload.status_name,
        payload.description,
        caller,
        has_number_of_up_vote=payload.has_number_of_up_vote,
    )
    return success_response(request=request, data=await record_to_response(services, record))


@router.get("/{tag_id}/votes", response_model=SuccessEnvelope[VoteSummaryResponse])
async def get_votes(
    request: Request,
    tag_id: str,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    summary = await services.lifecycle.vote_summary(tag_id, caller)
    return success_response(request=request, data=VoteSummaryResponse(**summary))


@router.post("/{tag_id}/votes", response_model=SuccessEnvelope[VoteResponse])
async def apply_vote(
    request: Request,
    tag_id: str,
    payload: VoteRequest,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    record = await services.lifecycle.apply_up_vote_action(tag_id, payload.action, caller)
    summary = await services.lifecycle.vote_summary(tag_id, caller)
    data = VoteResponse(
        **summary,
        status_change=await record_to_response(services, record) if record is not None else None,
    )
    return success_response(request=request, data=data)


@router.delete("/{tag_id}/votes", response_model=SuccessEnvelope[VoteResetResponse])
async def reset_votes(
    request: Request,
    tag_id: str,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    cleared = await services.lifecycle.reset_up_votes(tag_id, caller)
    return success_response(request=request, data=VoteResetResponse(tag_id=tag_id, cleared=cleared))


@router.post("/{tag_id}/views", status_code=202, response_model=SuccessEnvelope[ViewCountResponse])
async def record_view(
    request: Request,
    tag_id: str,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict:
    # Always accepted: view counting is best effort and never fails the reader.
    await services.lifecycle.increment_view_count(tag_id, caller)
    return success_response(request=request, data=ViewCountResponse(tag_id=tag_id, accepted=True))
