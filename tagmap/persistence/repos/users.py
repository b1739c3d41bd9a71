from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from tagmap.domain.models import UserProfile, utc_now


async def get_profile(session: AsyncSession, uid: str) -> UserProfile | None:
    result = await session.execute(select(UserProfile).where(UserProfile.uid == uid))
    return result.scalar_one_or_none()


async def list_profiles(session: AsyncSession, uids: list[str]) -> list[UserProfile]:
    if not uids:
        return []
    result = await session.execute(select(UserProfile).where(UserProfile.uid.in_(uids)))
    return list(result.scalars().all())


async def upsert_profile(
    session: AsyncSession,
    *,
    uid: str,
    display_name: str | None = None,
    email: str | None = None,
    has_read_guide: bool | None = None,
) -> UserProfile:
    # Race-safe upsert: two first requests from the same user must not collide on the PK.
    dialect = session.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert
    now = utc_now()
    values = {
        "uid": uid,
        "display_name": display_name,
        "email": email,
        "has_read_guide": bool(has_read_guide),
        "created_at": now,
        "updated_at": now,
    }
    updates: dict[str, object] = {"updated_at": now}
    if display_name is not None:
        updates["display_name"] = display_name
    if email is not None:
        updates["email"] = email
    if has_read_guide is not None:
        updates["has_read_guide"] = has_read_guide
    stmt = insert(UserProfile).values(**values)
    stmt = stmt.on_conflict_do_update(index_elements=[UserProfile.uid], set_=updates)
    await session.execute(stmt)
    profile = await session.get(UserProfile, uid, populate_existing=True)
    assert profile is not None
    return profile
