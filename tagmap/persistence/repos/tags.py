from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tagmap.domain.models import Tag


async def get_tag(session: AsyncSession, tag_id: str) -> Tag | None:
    result = await session.execute(select(Tag).where(Tag.id == tag_id))
    return result.scalar_one_or_none()


async def get_tag_for_update(session: AsyncSession, tag_id: str) -> Tag | None:
    # Row lock serializes writers across processes on Postgres; SQLite ignores FOR UPDATE.
    result = await session.execute(select(Tag).where(Tag.id == tag_id).with_for_update())
    return result.scalar_one_or_none()


async def tag_exists(session: AsyncSession, tag_id: str) -> bool:
    result = await session.execute(select(Tag.id).where(Tag.id == tag_id))
    return result.scalar_one_or_none() is not None


def add_tag(session: AsyncSession, tag: Tag) -> Tag:
    session.add(tag)
    return tag


async def increment_view_count(session: AsyncSession, tag_id: str) -> bool:
    # Single UPDATE avoids a read-modify-write race between concurrent viewers.
    result = await session.execute(
        update(Tag)
        .where(Tag.id == tag_id)
        .values(view_count=Tag.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)
