from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tagmap.domain.models import TagStatusRecord


async def latest_record(session: AsyncSession, tag_id: str) -> TagStatusRecord | None:
    result = await session.execute(
        select(TagStatusRecord)
        .where(TagStatusRecord.tag_id == tag_id)
        .order_by(TagStatusRecord.created_at.desc(), TagStatusRecord.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_records(session: AsyncSession, tag_id: str) -> list[TagStatusRecord]:
    result = await session.execute(
        select(TagStatusRecord)
        .where(TagStatusRecord.tag_id == tag_id)
        .order_by(TagStatusRecord.created_at, TagStatusRecord.id)
    )
    return list(result.scalars().all())


async def list_records_for_tags(
    session: AsyncSession, tag_ids: list[str]
) -> dict[str, list[TagStatusRecord]]:
    # Batch history loads for listing pages to avoid one query per tag.
    if not tag_ids:
        return {}
    result = await session.execute(
        select(TagStatusRecord)
        .where(TagStatusRecord.tag_id.in_(tag_ids))
        .order_by(TagStatusRecord.tag_id, TagStatusRecord.created_at, TagStatusRecord.id)
    )
    grouped: dict[str, list[TagStatusRecord]] = {tag_id: [] for tag_id in tag_ids}
    for record in result.scalars().all():
        grouped[record.tag_id].append(record)
    return grouped


async def insert_record(session: AsyncSession, record: TagStatusRecord) -> TagStatusRecord:
    session.add(record)
    # Flush so the autoincrement id is available for the staged notification.
    await session.flush()
    return record
