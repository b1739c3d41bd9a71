from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tagmap.domain.schemas import Caller
from tagmap.persistence.repos import users as users_repo
from tagmap.providers.users.base import UserDirectory
from tagmap.services.lifecycle import require_login
from tagmap.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


class UserService:
    # Per-user flags and cached identity fields; the auth collaborator stays authoritative.

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: UserDirectory,
    ) -> None:
        self._session_factory = session_factory
        self._directory = directory

    async def has_read_guide(self, caller: Caller | None) -> bool:
        # Anonymous callers have never read the guide.
        if caller is None or not caller.is_logged_in or not caller.uid:
            return False
        async with self._session_factory() as session:
            profile = await users_repo.get_profile(session, caller.uid)
        return bool(profile and profile.has_read_guide)

    async def mark_guide_read(self, caller: Caller) -> bool:
        uid = require_login(caller)
        async with self._session_factory() as session:
            try:
                profile = await users_repo.upsert_profile(
                    session,
                    uid=uid,
                    display_name=caller.display_name,
                    email=caller.email,
                    has_read_guide=True,
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        logger.info("guide_marked_read uid=%s", uid)
        return profile.has_read_guide

    async def remember_caller(self, caller: Caller) -> None:
        """Cache display name and email so other users see a readable author.

        Best effort: callers run this after their own write has committed, so a
        failure is logged and counted instead of raised.
        """
        if not caller.is_logged_in or not caller.uid:
            return
        if caller.display_name is None and caller.email is None:
            return
        try:
            async with self._session_factory() as session:
                try:
                    await users_repo.upsert_profile(
                        session,
                        uid=caller.uid,
                        display_name=caller.display_name,
                        email=caller.email,
                    )
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except Exception as exc:  # noqa: BLE001 - the profile cache must not fail the caller's write
            increment_counter("profile_cache_failures_total")
            logger.warning("profile_cache_failed uid=%s", caller.uid, exc_info=exc)

    async def display_name(self, uid: str) -> str:
        return await self._directory.get_display_name(uid)

    async def display_names(self, uids: Iterable[str]) -> dict[str, str]:
        return await self._directory.get_display_names(uids)
