from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from tagmap.domain.schemas import Caller, NewTagInput


class StepClock:
    # Deterministic clock: every reading is one second after the previous one.

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self._now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._step = step

    def __call__(self) -> datetime:
        self._now = self._now + self._step
        return self._now

    def peek(self) -> datetime:
        return self._now


def make_caller(uid: str) -> Caller:
    return Caller(uid=uid, is_logged_in=True, email=f"{uid}@example.com", display_name=uid.title())


def new_tag_input(**overrides: Any) -> NewTagInput:
    payload: dict[str, Any] = {
        "location_name": "North gate ramp",
        "accessibility": 4.0,
        "category": {"mission_name": "facility", "sub_type_name": "ramp"},
        "coordinates": {"latitude": "25.0173", "longitude": "121.5398"},
        "floor": 1,
        "description": "Wide ramp next to the bike racks",
    }
    payload.update(overrides)
    return NewTagInput.model_validate(payload)
