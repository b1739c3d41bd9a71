from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tagmap.core.config import Settings, get_settings
from tagmap.persistence.db import build_engine, build_sessionmaker
from tagmap.providers.auth.base import AuthVerifier
from tagmap.providers.auth.factory import get_auth_verifier
from tagmap.providers.storage.base import ImageStorage
from tagmap.providers.storage.factory import get_image_storage
from tagmap.providers.users.profiles import ProfileUserDirectory
from tagmap.services.ledger import StatusLedger
from tagmap.services.lifecycle import TagLifecycleEngine
from tagmap.services.listing import ListingService
from tagmap.services.notifications import NotificationBus
from tagmap.services.threshold import ArchivedThreshold
from tagmap.services.upvotes import UpVoteCounter
from tagmap.services.users import UserService


@dataclass
class Services:
    # Process-wide collaborators shared by every request.
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    bus: NotificationBus
    threshold: ArchivedThreshold
    ledger: StatusLedger
    counter: UpVoteCounter
    lifecycle: TagLifecycleEngine
    listing: ListingService
    users: UserService
    auth: AuthVerifier
    image_storage: ImageStorage

    async def aclose(self) -> None:
        # Ends every open SSE stream before the pool goes away.
        self.bus.close_all()
        await self.engine.dispose()


def build_services(
    settings: Settings | None = None,
    *,
    engine: AsyncEngine | None = None,
    auth_verifier: AuthVerifier | None = None,
    image_storage: ImageStorage | None = None,
) -> Services:
    settings = settings or get_settings()
    engine = engine or build_engine(settings.database_url)
    session_factory = build_sessionmaker(engine)
    bus = NotificationBus(buffer_size=settings.notification_buffer_size)
    threshold = ArchivedThreshold(bus, initial=settings.archived_threshold)
    ledger = StatusLedger(bus, statuses=settings.tag_statuses)
    counter = UpVoteCounter(threshold)
    storage = image_storage or get_image_storage(settings)
    return Services(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        bus=bus,
        threshold=threshold,
        ledger=ledger,
        counter=counter,
        lifecycle=TagLifecycleEngine(
            session_factory=session_factory,
            ledger=ledger,
            counter=counter,
            image_storage=storage,
        ),
        listing=ListingService(
            session_factory,
            archived_status=settings.archived_status,
            cursor_secret=settings.cursor_secret,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
        ),
        users=UserService(session_factory, ProfileUserDirectory(session_factory)),
        auth=auth_verifier or get_auth_verifier(settings),
        image_storage=storage,
    )
