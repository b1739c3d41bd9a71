from __future__ import annotations

import pytest

from tagmap.core.errors import ValidationError
from tagmap.services.upvotes import (
    CROSSED_DOWN,
    CROSSED_UP,
    VoteAction,
    VoteOutcome,
    detect_crossing,
    parse_vote_action,
)


def test_crossing_fires_on_upward_edge_only() -> None:
    assert detect_crossing(4, 5, 5) == CROSSED_UP
    assert detect_crossing(5, 6, 5) is None
    assert detect_crossing(3, 4, 5) is None


def test_crossing_fires_on_downward_edge_only() -> None:
    assert detect_crossing(5, 4, 5) == CROSSED_DOWN
    assert detect_crossing(4, 3, 5) is None
    assert detect_crossing(7, 6, 5) is None


def test_no_crossing_without_count_change() -> None:
    assert detect_crossing(5, 5, 5) is None
    assert detect_crossing(0, 0, 1) is None


def test_edge_sequence_at_threshold_five() -> None:
    counts = [0, 1, 2, 3, 4, 5, 6, 7, 6, 5, 4, 3, 4, 5]
    signals = [detect_crossing(prev, new, 5) for prev, new in zip(counts, counts[1:])]
    fired = [signal for signal in signals if signal is not None]
    assert fired == [CROSSED_UP, CROSSED_DOWN, CROSSED_UP]


def test_threshold_of_one_crosses_from_zero() -> None:
    assert detect_crossing(0, 1, 1) == CROSSED_UP
    assert detect_crossing(1, 0, 1) == CROSSED_DOWN


def test_parse_vote_action_accepts_enum_and_string() -> None:
    assert parse_vote_action("upvote") is VoteAction.UPVOTE
    assert parse_vote_action(VoteAction.RETRACT) is VoteAction.RETRACT


def test_parse_vote_action_rejects_unknown() -> None:
    with pytest.raises(ValidationError):
        parse_vote_action("downvote")


def test_vote_outcome_crossed_flag() -> None:
    assert VoteOutcome(previous_count=4, new_count=5, changed=True, direction=CROSSED_UP).crossed_threshold
    assert not VoteOutcome(previous_count=4, new_count=4, changed=False).crossed_threshold
