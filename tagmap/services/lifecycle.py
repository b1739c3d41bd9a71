"""Tag lifecycle and status workflow.

Every write that touches the ledger or the vote counter for a tag runs under
that tag's lock (in-process) and a ``FOR UPDATE`` lock on the tag row
(cross-process on Postgres), inside a single transaction. Validation and
not-found checks happen before the first write, so a failing call leaves no
partial state behind.

Vote-driven transitions walk ``promotion_path`` from settings: an upward
threshold crossing moves the tag one step forward, a downward crossing one
step back. Only a current record with ``has_up_vote`` set takes part, so a
moderator can take a tag out of the vote workflow by writing a status without
that flag.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tagmap.core.config import get_settings
from tagmap.core.errors import ForbiddenError, NotFoundError, ValidationError
from tagmap.domain.models import Tag, TagStatusRecord, utc_now
from tagmap.domain.schemas import (
    Caller,
    CategoryInput,
    CoordinatesInput,
    NewTagInput,
    TagPatch,
)
from tagmap.domain.views import TagView, TagWriteResult
from tagmap.persistence.repos import tags as tags_repo
from tagmap.providers.storage.base import ImageStorage
from tagmap.services.ledger import StatusLedger
from tagmap.services.locks import TagLockRegistry
from tagmap.services.telemetry import increment_counter
from tagmap.services.upvotes import CROSSED_UP, UpVoteCounter, VoteAction, parse_vote_action


logger = logging.getLogger(__name__)


def require_login(caller: Caller | None) -> str:
    if caller is None or not caller.is_logged_in or not caller.uid:
        raise ForbiddenError("User is not logged in")
    return caller.uid


def _parse_coordinate(raw: Any, name: str, limit: float) -> float:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(f"coordinates.{name} is required")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"coordinates.{name} must be a decimal number") from exc
    if not math.isfinite(value) or abs(value) > limit:
        raise ValidationError(f"coordinates.{name} must be within ±{limit:g}")
    return value


def normalize_coordinates(coordinates: CoordinatesInput | None) -> tuple[float, float]:
    if coordinates is None:
        raise ValidationError("coordinates are required")
    return (
        _parse_coordinate(coordinates.latitude, "latitude", 90.0),
        _parse_coordinate(coordinates.longitude, "longitude", 180.0),
    )


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _validate_category(category: CategoryInput | None) -> CategoryInput:
    if category is None:
        raise ValidationError("category is required")
    _require_text(category.mission_name, "category.mission_name")
    return category


class TagLifecycleEngine:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: StatusLedger,
        counter: UpVoteCounter,
        image_storage: ImageStorage,
        locks: TagLockRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._ledger = ledger
        self._counter = counter
        self._image_storage = image_storage
        self._locks = locks or TagLockRegistry()
        self._clock = clock or utc_now
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._initial_status = ledger.validate_status(settings.initial_status)
        self._promotion_path = [ledger.validate_status(name) for name in settings.promotion_path]

    @property
    def ledger(self) -> StatusLedger:
        return self._ledger

    async def create_tag(self, data: NewTagInput, author: Caller) -> TagWriteResult:
        uid = require_login(author)
        location_name = _require_text(data.location_name, "location_name")
        category = _validate_category(data.category)
        latitude, longitude = normalize_coordinates(data.coordinates)

        tag_id = self._id_factory()
        upload_number = data.image_upload_number
        # Upload URLs are pure naming; issuing them before the write keeps the call all-or-nothing.
        upload_urls = await self._image_storage.issue_upload_urls(upload_number, tag_id)

        now = self._clock()
        async with self._session_factory() as session:
            try:
                tag = tags_repo.add_tag(
                    session,
                    Tag(
                        id=tag_id,
                        location_name=location_name,
                        accessibility=data.accessibility,
                        mission_name=category.mission_name.strip(),
                        sub_type_name=category.sub_type_name,
                        target_name=category.target_name,
                        latitude=latitude,
                        longitude=longitude,
                        floor=data.floor,
                        description=data.description or "",
                        street_view_json=data.street_view_info.model_dump()
                        if data.street_view_info
                        else None,
                        image_urls_json=list(upload_urls),
                        view_count=0,
                        created_by=uid,
                        created_at=now,
                        updated_at=now,
                    ),
                )
                await session.flush()
                record = await self._ledger.append(
                    session,
                    tag_id,
                    status_name=self._initial_status,
                    created_by=uid,
                    has_up_vote=True,
                    created_at=now,
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        logger.info("tag_created tag_id=%s uid=%s images=%s", tag_id, uid, upload_number)
        return TagWriteResult(
            view=TagView(tag=tag, status=record, history=[record]),
            image_upload_number=upload_number,
            image_upload_urls=upload_urls,
        )

    async def update_tag(self, tag_id: str, patch: TagPatch, author: Caller) -> TagWriteResult:
        uid = require_login(author)
        changes: dict[str, Any] = {}
        fields = patch.model_fields_set
        if "location_name" in fields:
            changes["location_name"] = _require_text(patch.location_name, "location_name")
        if "category" in fields:
            category = _validate_category(patch.category)
            changes["mission_name"] = category.mission_name.strip()
            changes["sub_type_name"] = category.sub_type_name
            changes["target_name"] = category.target_name
        if "coordinates" in fields:
            changes["latitude"], changes["longitude"] = normalize_coordinates(patch.coordinates)
        if "accessibility" in fields:
            changes["accessibility"] = patch.accessibility
        if "floor" in fields:
            changes["floor"] = patch.floor
        if "description" in fields:
            changes["description"] = patch.description or ""
        if "street_view_info" in fields:
            changes["street_view_json"] = (
                patch.street_view_info.model_dump() if patch.street_view_info else None
            )
        delete_urls = list(dict.fromkeys(patch.image_delete_urls))

        async with self._locks.hold(tag_id):
            async with self._session_factory() as session:
                try:
                    tag = await tags_repo.get_tag_for_update(session, tag_id)
                    if tag is None:
                        raise NotFoundError(f"Tag {tag_id} not found")
                    upload_urls = await self._image_storage.issue_upload_urls(
                        patch.image_upload_number, tag_id
                    )
                    for key, value in changes.items():
                        setattr(tag, key, value)
                    if delete_urls:
                        doomed = set(delete_urls)
                        tag.image_urls_json = [
                            url for url in (tag.image_urls_json or []) if url not in doomed
                        ]
                    if upload_urls:
                        tag.image_urls_json = [*(tag.image_urls_json or []), *upload_urls]
                    tag.updated_at = self._clock()
                    history = await self._ledger.get_history(session, tag_id)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        delete_status: bool | None = None
        if delete_urls:
            delete_status = await self._delete_images(tag_id, delete_urls)
        logger.info(
            "tag_updated tag_id=%s uid=%s fields=%s", tag_id, uid, ",".join(sorted(changes))
        )
        return TagWriteResult(
            view=TagView(tag=tag, status=history[-1], history=history),
            image_upload_number=patch.image_upload_number,
            image_upload_urls=upload_urls,
            image_delete_status=delete_status,
        )

    async def set_status(
        self,
        tag_id: str,
        status_name: str,
        description: str | None,
        author: Caller,
        has_number_of_up_vote: bool = False,
    ) -> TagStatusRecord:
        """Append a moderator-chosen status.

        Re-asserting the current status is recorded as a new entry. Votes are
        left untouched; see :meth:`reset_up_votes`.
        """
        uid = require_login(author)
        status_name = self._ledger.validate_status(status_name)
        async with self._locks.hold(tag_id):
            async with self._session_factory() as session:
                try:
                    if await tags_repo.get_tag_for_update(session, tag_id) is None:
                        raise NotFoundError(f"Tag {tag_id} not found")
                    vote_count = (
                        await self._counter.count(session, tag_id) if has_number_of_up_vote else None
                    )
                    record = await self._ledger.append(
                        session,
                        tag_id,
                        status_name=status_name,
                        created_by=uid,
                        description=description,
                        number_of_up_vote=vote_count,
                        has_up_vote=has_number_of_up_vote,
                        created_at=self._clock(),
                    )
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        return record

    async def apply_up_vote_action(
        self,
        tag_id: str,
        action: str | VoteAction,
        author: Caller,
    ) -> TagStatusRecord | None:
        uid = require_login(author)
        action = parse_vote_action(action)
        async with self._locks.hold(tag_id):
            async with self._session_factory() as session:
                try:
                    if await tags_repo.get_tag_for_update(session, tag_id) is None:
                        raise NotFoundError(f"Tag {tag_id} not found")
                    current = await self._ledger.get_current(session, tag_id)
                    outcome = await self._counter.apply_vote(session, tag_id, uid, action)
                    record = None
                    if outcome.crossed_threshold and current.has_up_vote:
                        target = self._vote_target(current.status_name, outcome.direction)
                        if target is not None:
                            verb = "promotion" if outcome.direction == CROSSED_UP else "demotion"
                            record = await self._ledger.append(
                                session,
                                tag_id,
                                status_name=target,
                                created_by=uid,
                                description=f"Automatic {verb} at {outcome.new_count} up-votes",
                                number_of_up_vote=outcome.new_count,
                                has_up_vote=True,
                                created_at=self._clock(),
                            )
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        if record is not None:
            logger.info(
                "tag_status_vote_transition tag_id=%s from=%s to=%s count=%s",
                tag_id,
                current.status_name,
                record.status_name,
                outcome.new_count,
            )
        return record

    async def reset_up_votes(self, tag_id: str, author: Caller) -> int:
        uid = require_login(author)
        async with self._locks.hold(tag_id):
            async with self._session_factory() as session:
                try:
                    if await tags_repo.get_tag_for_update(session, tag_id) is None:
                        raise NotFoundError(f"Tag {tag_id} not found")
                    cleared = await self._counter.reset(session, tag_id)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        logger.info("tag_votes_reset tag_id=%s uid=%s cleared=%s", tag_id, uid, cleared)
        return cleared

    async def increment_view_count(self, tag_id: str, viewer: Caller | None = None) -> None:
        # Best effort: readers are never punished for a write-side failure.
        try:
            async with self._session_factory() as session:
                updated = await tags_repo.increment_view_count(session, tag_id)
                await session.commit()
        except Exception as exc:  # noqa: BLE001 - a lost view must never fail the reader
            increment_counter("view_count_failures_total")
            logger.warning("view_count_increment_failed tag_id=%s", tag_id, exc_info=exc)
            return
        if not updated:
            logger.info(
                "view_count_unknown_tag tag_id=%s viewer=%s",
                tag_id,
                viewer.uid if viewer is not None else None,
            )

    async def get_tag(self, tag_id: str) -> TagView:
        async with self._session_factory() as session:
            tag = await tags_repo.get_tag(session, tag_id)
            if tag is None:
                raise NotFoundError(f"Tag {tag_id} not found")
            history = await self._ledger.get_history(session, tag_id)
        return TagView(tag=tag, status=history[-1], history=history)

    async def vote_summary(self, tag_id: str, caller: Caller | None = None) -> dict[str, Any]:
        async with self._session_factory() as session:
            if not await tags_repo.tag_exists(session, tag_id):
                raise NotFoundError(f"Tag {tag_id} not found")
            count = await self._counter.count(session, tag_id)
            has_voted = False
            if caller is not None and caller.is_logged_in and caller.uid:
                has_voted = await self._counter.has_voted(session, tag_id, caller.uid)
        return {"tag_id": tag_id, "number_of_up_vote": count, "has_up_voted": has_voted}

    def _vote_target(self, status_name: str, direction: str | None) -> str | None:
        if status_name not in self._promotion_path:
            return None
        index = self._promotion_path.index(status_name)
        if direction == CROSSED_UP:
            return self._promotion_path[index + 1] if index + 1 < len(self._promotion_path) else None
        return self._promotion_path[index - 1] if index > 0 else None

    async def _delete_images(self, tag_id: str, urls: list[str]) -> bool:
        try:
            return await self._image_storage.delete_images(tag_id, urls)
        except Exception as exc:  # noqa: BLE001 - storage outages must not fail a committed update
            logger.warning("image_delete_failed tag_id=%s count=%s", tag_id, len(urls), exc_info=exc)
            return False
