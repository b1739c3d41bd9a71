from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tagmap.domain.models import TagUpVote


async def count_votes(session: AsyncSession, tag_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(TagUpVote).where(TagUpVote.tag_id == tag_id)
    )
    return int(result.scalar() or 0)


async def get_vote(session: AsyncSession, tag_id: str, user_id: str) -> TagUpVote | None:
    result = await session.execute(
        select(TagUpVote).where(TagUpVote.tag_id == tag_id, TagUpVote.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def add_vote(session: AsyncSession, tag_id: str, user_id: str) -> TagUpVote:
    vote = TagUpVote(tag_id=tag_id, user_id=user_id)
    session.add(vote)
    await session.flush()
    return vote


async def remove_vote(session: AsyncSession, tag_id: str, user_id: str) -> bool:
    result = await session.execute(
        delete(TagUpVote).where(TagUpVote.tag_id == tag_id, TagUpVote.user_id == user_id)
    )
    return bool(result.rowcount)


async def clear_votes(session: AsyncSession, tag_id: str) -> int:
    result = await session.execute(delete(TagUpVote).where(TagUpVote.tag_id == tag_id))
    return int(result.rowcount or 0)
