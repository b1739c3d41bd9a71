from __future__ import annotations

import pytest

from tagmap.domain.models import Base
from tagmap.persistence.db import build_engine, build_sessionmaker
from tagmap.providers.storage.local import LocalImageStorage
from tagmap.services import telemetry
from tagmap.services.ledger import StatusLedger
from tagmap.services.lifecycle import TagLifecycleEngine
from tagmap.services.listing import ListingService
from tagmap.services.notifications import NotificationBus
from tagmap.services.threshold import ArchivedThreshold
from tagmap.services.upvotes import UpVoteCounter
from tagmap.tests.utils.factories import StepClock, make_caller


TEST_STATUSES = ["pending", "verified", "archived", "rejected"]


@pytest.fixture(autouse=True)
def reset_telemetry() -> None:
    # Counters are process-global; isolate them per test.
    telemetry.reset()
    yield
    telemetry.reset()


@pytest.fixture
async def engine(tmp_path):
    # File-backed SQLite so concurrent sessions see each other's commits.
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tagmap.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus(buffer_size=16)


@pytest.fixture
def threshold(bus: NotificationBus) -> ArchivedThreshold:
    return ArchivedThreshold(bus, initial=5)


@pytest.fixture
def ledger(bus: NotificationBus) -> StatusLedger:
    return StatusLedger(bus, statuses=TEST_STATUSES)


@pytest.fixture
def counter(threshold: ArchivedThreshold) -> UpVoteCounter:
    return UpVoteCounter(threshold)


@pytest.fixture
def storage() -> LocalImageStorage:
    return LocalImageStorage("http://images.test")


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def lifecycle(session_factory, ledger, counter, storage, clock) -> TagLifecycleEngine:
    return TagLifecycleEngine(
        session_factory=session_factory,
        ledger=ledger,
        counter=counter,
        image_storage=storage,
        clock=clock,
    )


@pytest.fixture
def listing(session_factory) -> ListingService:
    return ListingService(
        session_factory,
        archived_status="archived",
        cursor_secret="test-cursor-secret",
        default_page_size=20,
        max_page_size=50,
    )


@pytest.fixture
def alice():
    return make_caller("alice")


@pytest.fixture
def bob():
    return make_caller("bob")
