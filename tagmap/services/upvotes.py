from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from tagmap.core.errors import ValidationError
from tagmap.persistence.repos import upvotes as upvotes_repo
from tagmap.services.threshold import ArchivedThreshold


logger = logging.getLogger(__name__)

CROSSED_UP = "up"
CROSSED_DOWN = "down"


class VoteAction(str, Enum):
    UPVOTE = "upvote"
    RETRACT = "retract"


def parse_vote_action(action: str | VoteAction) -> VoteAction:
    try:
        return VoteAction(action)
    except ValueError as exc:
        raise ValidationError(f"Unknown vote action {action!r}; expected upvote or retract") from exc


def detect_crossing(previous_count: int, new_count: int, threshold: int) -> str | None:
    # Only the transition edge counts; moving within either side of the threshold is silent.
    if previous_count < threshold <= new_count:
        return CROSSED_UP
    if new_count < threshold <= previous_count:
        return CROSSED_DOWN
    return None


@dataclass(frozen=True)
class VoteOutcome:
    previous_count: int
    new_count: int
    changed: bool
    direction: str | None = None

    @property
    def crossed_threshold(self) -> bool:
        return self.direction is not None


class UpVoteCounter:
    """Distinct voters per tag and threshold edge detection.

    Callers must serialize calls per tag (see ``TagLockRegistry``) and run them
    in the same transaction as any ledger append they trigger.
    """

    def __init__(self, threshold: ArchivedThreshold) -> None:
        self._threshold = threshold

    async def apply_vote(
        self,
        session: AsyncSession,
        tag_id: str,
        user_id: str,
        action: str | VoteAction,
    ) -> VoteOutcome:
        action = parse_vote_action(action)
        previous = await upvotes_repo.count_votes(session, tag_id)
        existing = await upvotes_repo.get_vote(session, tag_id, user_id)

        if action is VoteAction.UPVOTE:
            if existing is not None:
                return VoteOutcome(previous_count=previous, new_count=previous, changed=False)
            await upvotes_repo.add_vote(session, tag_id, user_id)
            new_count = previous + 1
        else:
            if existing is None:
                return VoteOutcome(previous_count=previous, new_count=previous, changed=False)
            await upvotes_repo.remove_vote(session, tag_id, user_id)
            new_count = previous - 1

        threshold = self._threshold.value
        direction = detect_crossing(previous, new_count, threshold)
        logger.debug(
            "vote_applied tag_id=%s action=%s count=%s threshold=%s crossed=%s",
            tag_id,
            action.value,
            new_count,
            threshold,
            direction,
        )
        return VoteOutcome(
            previous_count=previous,
            new_count=new_count,
            changed=True,
            direction=direction,
        )

    async def count(self, session: AsyncSession, tag_id: str) -> int:
        return await upvotes_repo.count_votes(session, tag_id)

    async def has_voted(self, session: AsyncSession, tag_id: str, user_id: str) -> bool:
        return await upvotes_repo.get_vote(session, tag_id, user_id) is not None

    async def reset(self, session: AsyncSession, tag_id: str) -> int:
        # Explicit operation; never triggered implicitly by status changes.
        return await upvotes_repo.clear_votes(session, tag_id)
