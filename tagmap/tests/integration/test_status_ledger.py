from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tagmap.core.errors import EmptyLedgerError, NotFoundError, ValidationError
from tagmap.domain.events import Topic
from tagmap.domain.models import Tag, TagStatusRecord, as_utc
from tagmap.services import telemetry


_T0 = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)


async def _seed_tag(session_factory, tag_id: str = "tag-1") -> None:
    async with session_factory() as session:
        session.add(
            Tag(
                id=tag_id,
                location_name="Library entrance",
                mission_name="facility",
                latitude=25.0,
                longitude=121.5,
                created_by="alice",
                created_at=_T0,
                updated_at=_T0,
            )
        )
        await session.commit()


@pytest.mark.asyncio
async def test_history_is_ordered_and_current_is_last(session_factory, ledger) -> None:
    await _seed_tag(session_factory)
    async with session_factory() as session:
        for name in ("pending", "verified", "archived"):
            await ledger.append(session, "tag-1", status_name=name, created_by="alice", created_at=_T0)
        await session.commit()

    async with session_factory() as session:
        history = await ledger.get_history(session, "tag-1")
        current = await ledger.get_current(session, "tag-1")

    assert [record.status_name for record in history] == ["pending", "verified", "archived"]
    stamps = [as_utc(record.created_at) for record in history]
    # Same clock reading three times; the ledger keeps them strictly increasing.
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 3
    assert current.id == history[-1].id


@pytest.mark.asyncio
async def test_append_validates_status_and_tag(session_factory, ledger) -> None:
    await _seed_tag(session_factory)
    async with session_factory() as session:
        with pytest.raises(ValidationError):
            await ledger.append(session, "tag-1", status_name="deleted", created_by="alice")
        with pytest.raises(NotFoundError):
            await ledger.append(session, "missing", status_name="pending", created_by="alice")


@pytest.mark.asyncio
async def test_events_published_only_after_commit(session_factory, ledger, bus) -> None:
    await _seed_tag(session_factory)
    subscription = bus.subscribe(Topic.TAG_STATUS_CHANGED)

    async with session_factory() as session:
        await ledger.append(session, "tag-1", status_name="pending", created_by="alice")
        assert await subscription.next(timeout=0.01) is None
        await session.commit()

    event = await subscription.next(timeout=1)
    assert event.tag_id == "tag-1"
    assert event.status_name == "pending"
    assert event.previous_status is None


@pytest.mark.asyncio
async def test_rolled_back_append_is_never_published(session_factory, ledger, bus) -> None:
    await _seed_tag(session_factory)
    subscription = bus.subscribe(Topic.TAG_STATUS_CHANGED)

    async with session_factory() as session:
        await ledger.append(session, "tag-1", status_name="pending", created_by="alice")
        await session.rollback()

    assert await subscription.next(timeout=0.01) is None
    async with session_factory() as session:
        with pytest.raises(EmptyLedgerError):
            await ledger.get_current(session, "tag-1")
    assert telemetry.get_counter("ledger_empty_total") == 1


@pytest.mark.asyncio
async def test_missing_tag_reports_not_found(session_factory, ledger) -> None:
    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await ledger.get_history(session, "missing")


@pytest.mark.asyncio
async def test_records_cannot_be_edited_or_deleted(session_factory, ledger) -> None:
    await _seed_tag(session_factory)
    async with session_factory() as session:
        record = await ledger.append(session, "tag-1", status_name="pending", created_by="alice")
        await session.commit()

    async with session_factory() as session:
        stored = await session.get(TagStatusRecord, record.id)
        stored.status_name = "verified"
        with pytest.raises(RuntimeError):
            await session.flush()
        await session.rollback()

    async with session_factory() as session:
        stored = await session.get(TagStatusRecord, record.id)
        await session.delete(stored)
        with pytest.raises(RuntimeError):
            await session.flush()
        await session.rollback()

    async with session_factory() as session:
        history = await ledger.get_history(session, "tag-1")
    assert [entry.status_name for entry in history] == ["pending"]


@pytest.mark.asyncio
async def test_publish_failure_does_not_undo_commit(session_factory, ledger, bus) -> None:
    await _seed_tag(session_factory)
    broken = bus.subscribe(Topic.TAG_STATUS_CHANGED)

    def _explode(_event):
        raise RuntimeError("subscriber gone")

    broken.deliver = _explode  # type: ignore[method-assign]

    async with session_factory() as session:
        await ledger.append(session, "tag-1", status_name="pending", created_by="alice")
        await session.commit()

    async with session_factory() as session:
        current = await ledger.get_current(session, "tag-1")
    assert current.status_name == "pending"
    assert telemetry.get_counter("notification_publish_failed_total") == 1


@pytest.mark.asyncio
async def test_tag_without_records_is_reported(session_factory, ledger) -> None:
    await _seed_tag(session_factory)
    async with session_factory() as session:
        with pytest.raises(EmptyLedgerError):
            await ledger.get_history(session, "tag-1")
