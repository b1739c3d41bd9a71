from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Union


class Topic(str, Enum):
    # Global topic: the process-wide archived threshold changed.
    ARCHIVED_THRESHOLD_CHANGED = "archived_threshold.changed"
    # Per-cursor family: subscribers carry an `after` anchor and only see newer events.
    TAG_STATUS_CHANGED = "tag.status_changed"


@dataclass(frozen=True)
class StatusChangedEvent:
    topic: ClassVar[Topic] = Topic.TAG_STATUS_CHANGED

    tag_id: str
    record_id: int
    status_name: str
    previous_status: str | None
    created_by: str
    description: str | None
    number_of_up_vote: int | None
    has_up_vote: bool
    occurred_at: datetime

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


@dataclass(frozen=True)
class ThresholdChangedEvent:
    topic: ClassVar[Topic] = Topic.ARCHIVED_THRESHOLD_CHANGED

    previous_value: int
    value: int
    changed_by: str
    occurred_at: datetime

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


Event = Union[StatusChangedEvent, ThresholdChangedEvent]
