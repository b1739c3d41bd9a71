"""Append-only status history per tag.

The ledger is the only writer of ``TagStatusRecord`` rows. Each append stages a
``StatusChangedEvent`` on the SQLAlchemy session; the event reaches the bus
from the session's ``after_commit`` hook, so subscribers never see a status that
was rolled back and never miss one that was committed. A publish failure after
commit is logged and counted but cannot undo the write.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, NoReturn

from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from tagmap.core.config import get_settings
from tagmap.core.errors import (
    EmptyLedgerError,
    NotFoundError,
    NotificationDeliveryError,
    ValidationError,
)
from tagmap.domain.events import StatusChangedEvent
from tagmap.domain.models import TagStatusRecord, as_utc, utc_now
from tagmap.persistence.repos import status as status_repo
from tagmap.persistence.repos import tags as tags_repo
from tagmap.services.notifications.bus import NotificationBus
from tagmap.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

_PENDING_EVENTS_KEY = "tagmap.pending_status_events"

# Records of one tag never share an instant; a colliding clock reading is bumped by this step.
_MIN_STEP = timedelta(microseconds=1)


class StatusLedger:
    def __init__(self, bus: NotificationBus, *, statuses: Iterable[str] | None = None) -> None:
        self._bus = bus
        configured = list(statuses) if statuses is not None else list(get_settings().tag_statuses)
        if not configured:
            raise ValueError("at least one tag status must be configured")
        self._statuses = frozenset(configured)

    @property
    def statuses(self) -> frozenset[str]:
        return self._statuses

    def validate_status(self, status_name: str | None) -> str:
        name = (status_name or "").strip()
        if name not in self._statuses:
            raise ValidationError(
                f"Unknown status {status_name!r}; expected one of {sorted(self._statuses)}"
            )
        return name

    async def append(
        self,
        session: AsyncSession,
        tag_id: str,
        *,
        status_name: str,
        created_by: str,
        description: str | None = None,
        number_of_up_vote: int | None = None,
        has_up_vote: bool = False,
        created_at: datetime | None = None,
    ) -> TagStatusRecord:
        status_name = self.validate_status(status_name)
        if not await tags_repo.tag_exists(session, tag_id):
            raise NotFoundError(f"Tag {tag_id} not found")

        previous = await status_repo.latest_record(session, tag_id)
        occurred_at = as_utc(created_at or utc_now())
        if previous is not None:
            earliest = as_utc(previous.created_at) + _MIN_STEP
            if occurred_at < earliest:
                occurred_at = earliest

        record = TagStatusRecord(
            tag_id=tag_id,
            status_name=status_name,
            created_at=occurred_at,
            created_by=created_by,
            description=description,
            number_of_up_vote=number_of_up_vote,
            has_up_vote=has_up_vote,
        )
        await status_repo.insert_record(session, record)
        self._stage(
            session,
            StatusChangedEvent(
                tag_id=tag_id,
                record_id=record.id,
                status_name=status_name,
                previous_status=previous.status_name if previous is not None else None,
                created_by=created_by,
                description=description,
                number_of_up_vote=number_of_up_vote,
                has_up_vote=has_up_vote,
                occurred_at=occurred_at,
            ),
        )
        logger.info(
            "status_append tag_id=%s record_id=%s status=%s previous=%s",
            tag_id,
            record.id,
            status_name,
            previous.status_name if previous is not None else None,
        )
        return record

    async def get_current(self, session: AsyncSession, tag_id: str) -> TagStatusRecord:
        record = await status_repo.latest_record(session, tag_id)
        if record is None:
            await self._raise_missing(session, tag_id)
        return record

    async def get_history(self, session: AsyncSession, tag_id: str) -> list[TagStatusRecord]:
        # Fresh query on every call so callers can restart iteration at will.
        records = await status_repo.list_records(session, tag_id)
        if not records:
            await self._raise_missing(session, tag_id)
        return records

    async def _raise_missing(self, session: AsyncSession, tag_id: str) -> NoReturn:
        if not await tags_repo.tag_exists(session, tag_id):
            raise NotFoundError(f"Tag {tag_id} not found")
        increment_counter("ledger_empty_total")
        logger.error("status_ledger_empty tag_id=%s", tag_id)
        raise EmptyLedgerError(f"Tag {tag_id} has no status records")

    def _stage(self, session: AsyncSession, event: StatusChangedEvent) -> None:
        pending = session.info.get(_PENDING_EVENTS_KEY)
        if pending is None:
            pending = []
            session.info[_PENDING_EVENTS_KEY] = pending
            sync_session = session.sync_session
            sa_event.listen(sync_session, "after_commit", self._publish_pending)
            sa_event.listen(sync_session, "after_rollback", self._discard_pending)
        pending.append(event)

    def _publish_pending(self, sync_session: Session) -> None:
        pending = sync_session.info.get(_PENDING_EVENTS_KEY) or []
        sync_session.info[_PENDING_EVENTS_KEY] = []
        for staged in pending:
            try:
                self._bus.publish(staged.topic, staged)
            except NotificationDeliveryError as exc:
                increment_counter("notification_publish_failed_total")
                logger.warning(
                    "status_publish_degraded tag_id=%s record_id=%s",
                    staged.tag_id,
                    staged.record_id,
                    exc_info=exc,
                )

    def _discard_pending(self, sync_session: Session) -> None:
        pending = sync_session.info.get(_PENDING_EVENTS_KEY)
        if pending:
            logger.debug("status_events_discarded count=%s", len(pending))
            sync_session.info[_PENDING_EVENTS_KEY] = []
