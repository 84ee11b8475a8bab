"""Unit tests for uprising thresholds and outcome inference."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

from polity.domain.enums import RebellionOutcome, RebellionStatus
from polity.domain.uprising import infer_outcome, required_supports, threshold_reached


@dataclass
class _Rebellion:
    status: str = RebellionStatus.RESOLVED
    current_supports: int = 1
    required_supports: int = 3
    battle_started_at: datetime | None = None
    battle_outcome: str | None = None


@pytest.mark.parametrize(
    ("non_sovereign", "expected"),
    [(0, 1), (1, 1), (4, 1), (5, 1), (6, 2), (10, 2), (11, 3), (100, 20)],
)
def test_required_supports(non_sovereign, expected):
    assert required_supports(non_sovereign) == expected


def test_required_supports_custom_ratio():
    assert required_supports(10, ratio=0.5) == 5


@given(st.integers(min_value=0, max_value=100_000))
def test_required_supports_bounds(non_sovereign):
    required = required_supports(non_sovereign)
    assert required >= 1
    assert required <= max(1, non_sovereign)


def test_threshold_reached():
    assert threshold_reached(2, 2)
    assert threshold_reached(3, 2)
    assert not threshold_reached(1, 2)


class TestInferOutcome:
    def test_active_rebellion_has_no_outcome(self):
        assert infer_outcome(_Rebellion(status=RebellionStatus.AGITATION)) is None
        assert infer_outcome(_Rebellion(status=RebellionStatus.BATTLE)) is None

    def test_battle_won(self):
        assert infer_outcome(_Rebellion(battle_outcome="won")) == RebellionOutcome.OVERTHROWN

    def test_battle_lost(self):
        assert infer_outcome(_Rebellion(battle_outcome="lost")) == RebellionOutcome.SUPPRESSED

    def test_accepted_negotiation(self):
        outcome = infer_outcome(_Rebellion(), ["rejected", "accepted"])
        assert outcome == RebellionOutcome.NEGOTIATED

    def test_fizzled(self):
        assert infer_outcome(_Rebellion(), ["rejected"]) == RebellionOutcome.FIZZLED
        assert infer_outcome(_Rebellion()) == RebellionOutcome.FIZZLED
