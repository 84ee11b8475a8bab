"""Unit tests for the law catalog and vote arithmetic.

Tests cover:
- Registry lookups and permission predicates per governance type
- Metadata validation
- Final and early outcomes for every passing condition
- Bi-communal (alliance) aggregation
- Property-based checks on the tally rules
"""

from datetime import timedelta

import pytest
from hypothesis import given
from hypothesis import strategies as st

from polity.domain.enums import (
    GovernanceType,
    LawType,
    PassingCondition,
    ProposalStatus,
    VoteAccess,
    VoteChoice,
)
from polity.domain.errors import InvalidProposal, LawNotAvailable
from polity.domain.laws import (
    DEFAULT_REGISTRY,
    SideTally,
    VoteTally,
    alliance_outcome,
    can_propose,
    can_vote,
    decided_outcome,
    final_outcome,
    half_approved,
    parse_duration,
    rules_for,
    tally_passes,
    voter_admitted,
)


class TestParseDuration:
    def test_units(self):
        assert parse_duration("24h") == timedelta(hours=24)
        assert parse_duration("0h") == timedelta(0)
        assert parse_duration("30m") == timedelta(minutes=30)
        assert parse_duration("2d") == timedelta(days=2)
        assert parse_duration("45s") == timedelta(seconds=45)

    @pytest.mark.parametrize("text", ["", "h", "24", "1.5h", "24 hours", "-1h"])
    def test_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid time format"):
            parse_duration(text)


class TestRegistry:
    def test_every_law_has_a_voting_window(self):
        for governance in GovernanceType:
            for definition in DEFAULT_REGISTRY.available_laws(governance):
                rule = definition.rules[governance]
                assert rule.voting_window >= timedelta(0)

    def test_unknown_law(self):
        with pytest.raises(InvalidProposal, match="Unknown law type"):
            DEFAULT_REGISTRY.definition("RAISE_TAXES")

    def test_heir_is_monarchy_only(self):
        with pytest.raises(LawNotAvailable):
            rules_for(LawType.PROPOSE_HEIR, "democracy")
        with pytest.raises(LawNotAvailable):
            rules_for(LawType.MESSAGE_OF_THE_DAY, "democracy")

    def test_available_laws(self):
        monarchy = {d.law_type for d in DEFAULT_REGISTRY.available_laws("monarchy")}
        democracy = {d.law_type for d in DEFAULT_REGISTRY.available_laws("democracy")}
        assert monarchy == set(LawType)
        assert LawType.PROPOSE_HEIR not in democracy
        assert LawType.MESSAGE_OF_THE_DAY not in democracy
        assert LawType.CFC_ALLIANCE in democracy

    def test_monarchy_decrees(self):
        rule = rules_for(LawType.WORK_TAX, "monarchy")
        assert rule.is_decree
        assert rule.voting_window == timedelta(0)
        assert can_propose(LawType.WORK_TAX, "monarchy", 0)
        assert not can_propose(LawType.WORK_TAX, "monarchy", 1)
        assert not can_propose(LawType.WORK_TAX, "monarchy", 10)

    def test_monarchy_alliance_is_a_council_vote(self):
        rule = rules_for(LawType.CFC_ALLIANCE, "monarchy")
        assert not rule.is_decree
        assert rule.passing_condition == PassingCondition.MAJORITY_VOTE
        assert rule.can_fast_track
        assert can_vote(LawType.CFC_ALLIANCE, "monarchy", 1)
        assert not can_vote(LawType.CFC_ALLIANCE, "monarchy", 10)

    def test_democracy_rules(self):
        war = rules_for(LawType.DECLARE_WAR, "democracy")
        assert war.passing_condition == PassingCondition.MAJORITY_VOTE
        assert war.voting_window == timedelta(hours=48)
        assert can_propose(LawType.DECLARE_WAR, "democracy", 10)

        change = rules_for(LawType.CHANGE_GOVERNANCE, "democracy")
        assert change.passing_condition == PassingCondition.SUPERMAJORITY_VOTE
        assert not can_propose(LawType.CHANGE_GOVERNANCE, "democracy", 10)
        assert can_propose(LawType.CHANGE_GOVERNANCE, "democracy", 1)
        assert can_vote(LawType.CHANGE_GOVERNANCE, "democracy", 10)

        tax = rules_for(LawType.WORK_TAX, "democracy")
        assert tax.vote_access == VoteAccess.COUNCIL_ONLY
        assert not can_vote(LawType.WORK_TAX, "democracy", 10)

    def test_voter_admitted(self):
        assert voter_admitted(VoteAccess.SOVEREIGN_ONLY, 0)
        assert not voter_admitted(VoteAccess.SOVEREIGN_ONLY, 1)
        assert voter_admitted(VoteAccess.COUNCIL_ONLY, 1)
        assert not voter_admitted(VoteAccess.COUNCIL_ONLY, 10)
        assert voter_admitted(VoteAccess.ALL_MEMBERS, 10)


class TestMetadataValidation:
    def test_cleaned_payload(self):
        cleaned = DEFAULT_REGISTRY.validate_metadata(
            LawType.MESSAGE_OF_THE_DAY,
            {"title": "  Rally  ", "content": "Meet at the gate", "signed": "K"},
            community_id=1,
        )
        assert cleaned == {"title": "Rally", "content": "Meet at the gate", "signed": "K"}

    def test_missing_field(self):
        with pytest.raises(InvalidProposal, match="Invalid tax_rate"):
            DEFAULT_REGISTRY.validate_metadata(LawType.WORK_TAX, {}, community_id=1)

    def test_rate_out_of_range(self):
        with pytest.raises(InvalidProposal, match="Invalid tariff_rate"):
            DEFAULT_REGISTRY.validate_metadata(
                LawType.IMPORT_TARIFF, {"tariff_rate": 1.5}, community_id=1
            )

    def test_currency_cap(self):
        DEFAULT_REGISTRY.validate_metadata(
            LawType.ISSUE_CURRENCY,
            {"gold_amount": 1_000_000, "conversion_rate": 2},
            community_id=1,
        )
        with pytest.raises(InvalidProposal, match="gold_amount"):
            DEFAULT_REGISTRY.validate_metadata(
                LawType.ISSUE_CURRENCY,
                {"gold_amount": 1_000_001, "conversion_rate": 2},
                community_id=1,
            )

    def test_target_must_be_another_community(self):
        with pytest.raises(InvalidProposal, match="different from your own"):
            DEFAULT_REGISTRY.validate_metadata(
                LawType.DECLARE_WAR, {"target_community_id": 3}, community_id=3
            )

    def test_governance_change_must_change_something(self):
        with pytest.raises(InvalidProposal, match="already uses"):
            DEFAULT_REGISTRY.validate_metadata(
                LawType.CHANGE_GOVERNANCE,
                {"new_governance_type": "democracy"},
                community_id=1,
                governance_type="democracy",
            )
        cleaned = DEFAULT_REGISTRY.validate_metadata(
            LawType.CHANGE_GOVERNANCE,
            {"new_governance_type": "monarchy"},
            community_id=1,
            governance_type="democracy",
        )
        assert cleaned["new_governance_type"] == "monarchy"

    def test_unknown_governance_type(self):
        with pytest.raises(InvalidProposal, match="new_governance_type"):
            DEFAULT_REGISTRY.validate_metadata(
                LawType.CHANGE_GOVERNANCE, {"new_governance_type": "anarchy"}, community_id=1
            )


class TestFinalOutcome:
    def test_supermajority_two_of_three_is_not_enough(self):
        tally = VoteTally(yes=2, no=1)
        assert final_outcome(tally, PassingCondition.SUPERMAJORITY_VOTE) == ProposalStatus.REJECTED

    def test_supermajority_three_of_four_passes(self):
        tally = VoteTally(yes=3, no=1)
        assert final_outcome(tally, PassingCondition.SUPERMAJORITY_VOTE) == ProposalStatus.PASSED

    def test_majority(self):
        assert final_outcome(VoteTally(3, 2), PassingCondition.MAJORITY_VOTE) == ProposalStatus.PASSED
        assert (
            final_outcome(VoteTally(2, 3), PassingCondition.MAJORITY_VOTE)
            == ProposalStatus.REJECTED
        )

    def test_majority_tie_rejected(self):
        assert (
            final_outcome(VoteTally(2, 2), PassingCondition.MAJORITY_VOTE)
            == ProposalStatus.REJECTED
        )

    def test_unanimous(self):
        assert final_outcome(VoteTally(4, 0), PassingCondition.UNANIMOUS) == ProposalStatus.PASSED
        assert final_outcome(VoteTally(4, 1), PassingCondition.UNANIMOUS) == ProposalStatus.REJECTED

    def test_sovereign_only_follows_the_sovereign(self):
        tally = VoteTally(yes=0, no=3, sovereign_choice=VoteChoice.YES)
        assert final_outcome(tally, PassingCondition.SOVEREIGN_ONLY) == ProposalStatus.PASSED
        tally = VoteTally(yes=3, no=0)
        assert final_outcome(tally, PassingCondition.SOVEREIGN_ONLY) == ProposalStatus.REJECTED

    @pytest.mark.parametrize("condition", list(PassingCondition))
    def test_no_votes_expires(self, condition):
        assert final_outcome(VoteTally(), condition) == ProposalStatus.EXPIRED


class TestDecidedOutcome:
    def test_nothing_cast(self):
        assert decided_outcome(VoteTally(), PassingCondition.MAJORITY_VOTE, 5) is None

    def test_majority_locked_in(self):
        assert (
            decided_outcome(VoteTally(3, 0), PassingCondition.MAJORITY_VOTE, 5)
            == ProposalStatus.PASSED
        )
        assert (
            decided_outcome(VoteTally(0, 3), PassingCondition.MAJORITY_VOTE, 5)
            == ProposalStatus.REJECTED
        )

    def test_majority_still_open(self):
        assert decided_outcome(VoteTally(2, 0), PassingCondition.MAJORITY_VOTE, 5) is None

    def test_everyone_voted(self):
        assert (
            decided_outcome(VoteTally(2, 1), PassingCondition.SUPERMAJORITY_VOTE, 3)
            == ProposalStatus.REJECTED
        )

    def test_sovereign_only(self):
        tally = VoteTally(yes=1, no=0, sovereign_choice=VoteChoice.NO)
        assert (
            decided_outcome(tally, PassingCondition.SOVEREIGN_ONLY, 4) == ProposalStatus.REJECTED
        )
        assert decided_outcome(VoteTally(1, 0), PassingCondition.SOVEREIGN_ONLY, 4) is None

    @given(
        yes=st.integers(min_value=0, max_value=30),
        no=st.integers(min_value=0, max_value=30),
        extra=st.integers(min_value=0, max_value=30),
        condition=st.sampled_from(
            [
                PassingCondition.MAJORITY_VOTE,
                PassingCondition.SUPERMAJORITY_VOTE,
                PassingCondition.UNANIMOUS,
            ]
        ),
    )
    def test_early_outcome_agrees_with_every_completion(self, yes, no, extra, condition):
        tally = VoteTally(yes, no)
        decided = decided_outcome(tally, condition, yes + no + extra)
        if decided is None:
            return
        for more_yes in range(extra + 1):
            completed = VoteTally(yes + more_yes, no + extra - more_yes)
            assert final_outcome(completed, condition) == decided

    @given(yes=st.integers(min_value=0, max_value=50), no=st.integers(min_value=0, max_value=50))
    def test_supermajority_implies_majority(self, yes, no):
        tally = VoteTally(yes, no)
        if tally_passes(tally, PassingCondition.SUPERMAJORITY_VOTE):
            assert tally_passes(tally, PassingCondition.MAJORITY_VOTE)


def _side(community_id, yes=0, no=0, eligible=3):
    return SideTally(
        community_id=community_id,
        condition=PassingCondition.MAJORITY_VOTE,
        eligible=eligible,
        tally=VoteTally(yes, no),
    )


class TestAllianceOutcome:
    def test_pending_until_both_sides_decided(self):
        initiator = _side(1, yes=3)
        target = _side(2, no=1)
        assert alliance_outcome(initiator, target, window_closed=False) is None
        assert half_approved(initiator, target)

    def test_both_sides_decided_in_favour(self):
        assert (
            alliance_outcome(_side(1, yes=2), _side(2, yes=3), window_closed=False)
            == ProposalStatus.PASSED
        )

    def test_one_side_rejecting_does_not_end_voting_early(self):
        assert alliance_outcome(_side(1, yes=3), _side(2, no=3), window_closed=False) is None

    def test_one_sided_approval_rejected_at_close(self):
        assert (
            alliance_outcome(_side(1, yes=3), _side(2), window_closed=True)
            == ProposalStatus.REJECTED
        )

    def test_silence_expires_at_close(self):
        assert alliance_outcome(_side(1), _side(2), window_closed=True) == ProposalStatus.EXPIRED

    def test_both_approve_at_close(self):
        assert (
            alliance_outcome(_side(1, yes=1), _side(2, yes=1, no=0), window_closed=True)
            == ProposalStatus.PASSED
        )
        assert not half_approved(_side(1, yes=1), _side(2, yes=1))
