"""Unit tests for the rank hierarchy and seat limits."""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from hypothesis import given
from hypothesis import strategies as st

from polity.domain.enums import GovernanceType, RankTier
from polity.domain.errors import Conflict, InvalidGovernanceType, InvalidProposal
from polity.domain.ranks import (
    can_assign_ranks,
    governance_profile,
    is_council,
    is_sovereign,
    normalize_governance_type,
    normalize_role,
    rank_label,
    rank_of,
    seat_limit,
    validate_rank_assignment,
)


@dataclass
class _Row:
    rank_tier: int | None = None
    role: str | None = None


class TestRankOf:
    def test_rank_tier_wins_over_role(self):
        assert rank_of(_Row(rank_tier=1, role="founder")) == 1

    def test_legacy_founder_is_sovereign(self):
        assert rank_of(_Row(role="founder")) == RankTier.SOVEREIGN

    def test_legacy_leader_is_secretary(self):
        assert rank_of(_Row(role=" Leader ")) == RankTier.SECRETARY

    def test_missing_role_is_member(self):
        assert rank_of(_Row()) == RankTier.MEMBER

    @given(st.text(max_size=20))
    def test_unknown_roles_fall_back_to_member(self, role):
        expected = {"founder": 0, "leader": 1}.get(role.strip().lower(), 10)
        assert normalize_role(role) == expected


class TestPredicates:
    def test_sovereign(self):
        assert is_sovereign(0)
        assert not is_sovereign(1)
        assert not is_sovereign(None)

    def test_council_includes_sovereign_and_secretaries(self):
        assert is_council(0)
        assert is_council(1)
        assert not is_council(10)
        assert not is_council(None)

    def test_only_sovereign_assigns_ranks(self):
        for governance in GovernanceType:
            assert can_assign_ranks(governance, RankTier.SOVEREIGN)
            assert not can_assign_ranks(governance, RankTier.SECRETARY)
            assert not can_assign_ranks(governance, RankTier.MEMBER)


class TestGovernanceProfiles:
    def test_labels(self):
        assert rank_label("monarchy", 0) == "King/Queen"
        assert rank_label("monarchy", 1) == "Secretary"
        assert rank_label("democracy", 0) == "President"
        assert rank_label("democracy", 1) == "Minister"
        assert rank_label("democracy", 10) == "Citizen"
        assert rank_label("democracy", 7) == "Rank 7"

    def test_seat_limits(self):
        assert seat_limit("monarchy", RankTier.SECRETARY) == 3
        assert seat_limit("democracy", RankTier.SECRETARY) == 5
        assert seat_limit("monarchy", RankTier.SOVEREIGN) == 1
        assert seat_limit("monarchy", RankTier.MEMBER) is None

    def test_unknown_rank_has_no_seat(self):
        with pytest.raises(InvalidProposal, match="Invalid rank tier"):
            seat_limit("monarchy", 5)

    def test_missing_governance_defaults_to_monarchy(self):
        assert normalize_governance_type(None) == GovernanceType.MONARCHY
        assert governance_profile("").label == "Kingdom"
        assert normalize_governance_type(" Democracy ") == GovernanceType.DEMOCRACY

    def test_unknown_governance_rejected(self):
        with pytest.raises(InvalidGovernanceType):
            normalize_governance_type("oligarchy")


class TestValidateRankAssignment:
    def test_within_limit(self):
        validate_rank_assignment("monarchy", RankTier.SECRETARY, 2)

    def test_limit_reached(self):
        with pytest.raises(Conflict, match="Cannot assign more than 3 Secretary"):
            validate_rank_assignment("monarchy", RankTier.SECRETARY, 3)

    def test_republic_allows_five_ministers(self):
        validate_rank_assignment("democracy", RankTier.SECRETARY, 4)
        with pytest.raises(Conflict):
            validate_rank_assignment("democracy", RankTier.SECRETARY, 5)

    @given(st.integers(min_value=0, max_value=10_000))
    def test_members_are_unlimited(self, current):
        validate_rank_assignment("democracy", RankTier.MEMBER, current)
