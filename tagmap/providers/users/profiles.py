from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tagmap.persistence.repos import users as users_repo


class ProfileUserDirectory:
    # Resolve display names from cached user profiles; unknown users fall back to their uid.

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_display_name(self, uid: str) -> str:
        names = await self.get_display_names([uid])
        return names[uid]

    async def get_display_names(self, uids: Iterable[str]) -> dict[str, str]:
        wanted = sorted(set(uids))
        if not wanted:
            return {}
        async with self._session_factory() as session:
            profiles = await users_repo.list_profiles(session, wanted)
        known = {profile.uid: profile.display_name for profile in profiles if profile.display_name}
        return {uid: known.get(uid, uid) for uid in wanted}
