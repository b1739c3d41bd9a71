from __future__ import annotations

import logging

from tagmap.core.config import get_settings
from tagmap.core.errors import ForbiddenError, NotificationDeliveryError, ValidationError
from tagmap.domain.events import ThresholdChangedEvent
from tagmap.domain.models import utc_now
from tagmap.domain.schemas import Caller
from tagmap.services.notifications.bus import NotificationBus
from tagmap.services.telemetry import increment_counter, set_gauge


logger = logging.getLogger(__name__)


def _validate(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("archived threshold must be an integer")
    if value < 1:
        raise ValidationError("archived threshold must be at least 1")
    return value


class ArchivedThreshold:
    """Process-wide vote count that drives automatic promotion and demotion.

    Reads are plain attribute access. Changes go through :meth:`set`, which
    publishes ``ARCHIVED_THRESHOLD_CHANGED`` so live clients can refresh.
    Existing tags are not re-evaluated when the value changes; only the next
    vote on a tag is compared against the new value.
    """

    def __init__(self, bus: NotificationBus, *, initial: int | None = None) -> None:
        self._bus = bus
        self._value = _validate(initial if initial is not None else get_settings().archived_threshold)
        set_gauge("archived_threshold", self._value)

    @property
    def value(self) -> int:
        return self._value

    def get(self) -> int:
        return self._value

    def set(self, value: int, *, author: Caller) -> int:
        if not author.is_logged_in or not author.uid:
            raise ForbiddenError("User is not logged in")
        value = _validate(value)
        previous = self._value
        if value == previous:
            return value
        self._value = value
        set_gauge("archived_threshold", value)
        logger.info(
            "archived_threshold_changed previous=%s value=%s uid=%s", previous, value, author.uid
        )
        event = ThresholdChangedEvent(
            previous_value=previous,
            value=value,
            changed_by=author.uid,
            occurred_at=utc_now(),
        )
        try:
            self._bus.publish(event.topic, event)
        except NotificationDeliveryError as exc:
            increment_counter("notification_publish_failed_total")
            logger.warning("archived_threshold_publish_degraded value=%s", value, exc_info=exc)
        return value
