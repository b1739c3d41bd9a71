from __future__ import annotations

import pytest

from tagmap.core.errors import ForbiddenError, ValidationError
from tagmap.domain.events import Topic
from tagmap.domain.schemas import ANONYMOUS
from tagmap.services import telemetry
from tagmap.services.notifications import NotificationBus
from tagmap.services.threshold import ArchivedThreshold
from tagmap.tests.utils.factories import make_caller


@pytest.mark.asyncio
async def test_set_publishes_change_event() -> None:
    bus = NotificationBus(buffer_size=4)
    threshold = ArchivedThreshold(bus, initial=5)
    subscription = bus.subscribe(Topic.ARCHIVED_THRESHOLD_CHANGED)

    assert threshold.set(8, author=make_caller("mod")) == 8

    event = await subscription.next(timeout=1)
    assert (event.previous_value, event.value, event.changed_by) == (5, 8, "mod")
    assert threshold.get() == 8
    assert telemetry.get_gauge("archived_threshold") == 8


@pytest.mark.asyncio
async def test_same_value_is_silent() -> None:
    bus = NotificationBus(buffer_size=4)
    threshold = ArchivedThreshold(bus, initial=5)
    subscription = bus.subscribe(Topic.ARCHIVED_THRESHOLD_CHANGED)

    assert threshold.set(5, author=make_caller("mod")) == 5
    assert await subscription.next(timeout=0.01) is None


@pytest.mark.parametrize("value", [0, -3, True, "5"])
def test_invalid_values_rejected(value) -> None:
    threshold = ArchivedThreshold(NotificationBus(buffer_size=4), initial=5)
    with pytest.raises(ValidationError):
        threshold.set(value, author=make_caller("mod"))
    assert threshold.value == 5


def test_anonymous_cannot_change_threshold() -> None:
    threshold = ArchivedThreshold(NotificationBus(buffer_size=4), initial=5)
    with pytest.raises(ForbiddenError):
        threshold.set(3, author=ANONYMOUS)


def test_initial_value_validated() -> None:
    with pytest.raises(ValidationError):
        ArchivedThreshold(NotificationBus(buffer_size=4), initial=0)
