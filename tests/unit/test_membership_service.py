"""Unit tests for MembershipService."""

from __future__ import annotations

import pytest

from polity.domain.enums import RankTier, VoteAccess
from polity.domain.errors import Conflict, NotFound, PermissionDenied
from polity.models import Community, Member
from polity.services.membership_service import MembershipService


@pytest.fixture
def membership(session, locks, clock):
    return MembershipService(session, locks=locks, clock=clock)


@pytest.fixture
def kingdom(membership):
    community = membership.create_community("Avalon", founder_id=1)
    for user_id in (2, 3, 4, 5, 6):
        membership.join(community.id, user_id)
    return community


class TestCommunities:
    def test_founder_becomes_sovereign(self, membership, clock):
        community = membership.create_community("Avalon", founder_id=7, governance_type="democracy")

        assert community.governance_type == "democracy"
        assert community.members_count == 1
        assert membership.sovereign_of(community.id) == 7
        assert membership.rank_in(community.id, 7) == RankTier.SOVEREIGN
        assert membership.member(community.id, 7).joined_at == clock.now

    def test_duplicate_name(self, membership):
        membership.create_community("Avalon", founder_id=1)
        with pytest.raises(Conflict, match="already exists"):
            membership.create_community("  Avalon ", founder_id=2)

    def test_blank_name(self, membership):
        with pytest.raises(Conflict):
            membership.create_community("   ", founder_id=1)

    def test_missing_community(self, membership):
        with pytest.raises(NotFound):
            membership.get_community(404)

    def test_list_communities(self, membership):
        membership.create_community("Avalon", founder_id=1)
        membership.create_community("Camelot", founder_id=2)
        assert [c.name for c in membership.list_communities()] == ["Avalon", "Camelot"]


class TestRoster:
    def test_join(self, membership, kingdom):
        assert kingdom.members_count == 6
        assert membership.rank_in(kingdom.id, 4) == RankTier.MEMBER
        assert membership.rank_in(kingdom.id, 99) is None

    def test_join_twice(self, membership, kingdom):
        with pytest.raises(Conflict, match="already a member"):
            membership.join(kingdom.id, 2)

    def test_join_missing_community(self, membership):
        with pytest.raises(NotFound):
            membership.join(12, 1)

    def test_counts(self, membership, kingdom):
        membership.assign_rank(kingdom.id, 1, 2, RankTier.SECRETARY)

        assert membership.count_members(kingdom.id) == 6
        assert membership.count_members(kingdom.id, exclude_sovereign=True) == 5
        assert membership.count_eligible(kingdom.id, VoteAccess.ALL_MEMBERS) == 6
        assert membership.count_eligible(kingdom.id, VoteAccess.COUNCIL_ONLY) == 2
        assert membership.count_eligible(kingdom.id, VoteAccess.SOVEREIGN_ONLY) == 1

    def test_members_listed_by_seniority(self, membership, kingdom):
        membership.assign_rank(kingdom.id, 1, 5, RankTier.SECRETARY)
        assert [m.user_id for m in membership.list_members(kingdom.id)] == [1, 5, 2, 3, 4, 6]


class TestLegacyRoles:
    def test_role_strings_are_normalised(self, session, membership, clock):
        community = Community(name="Old Guard", governance_type="monarchy", members_count=2)
        session.add(community)
        session.flush()
        session.add_all(
            [
                Member(community_id=community.id, user_id=40, role="Founder", joined_at=clock.now),
                Member(community_id=community.id, user_id=41, role="leader", joined_at=clock.now),
            ]
        )
        session.commit()

        assert membership.sovereign_of(community.id) == 40
        assert membership.rank_in(community.id, 41) == RankTier.SECRETARY
        assert membership.count_eligible(community.id, VoteAccess.COUNCIL_ONLY) == 2


class TestAssignRank:
    def test_sovereign_appoints_secretary(self, membership, kingdom):
        member = membership.assign_rank(kingdom.id, 1, 2, RankTier.SECRETARY)
        assert member.rank_tier == RankTier.SECRETARY
        assert membership.rank_in(kingdom.id, 2) == RankTier.SECRETARY

    def test_secretary_seats_are_limited(self, membership, kingdom):
        for user_id in (2, 3, 4):
            membership.assign_rank(kingdom.id, 1, user_id, RankTier.SECRETARY)
        with pytest.raises(Conflict, match="Cannot assign more than 3"):
            membership.assign_rank(kingdom.id, 1, 5, RankTier.SECRETARY)

    def test_reassigning_a_secretary_does_not_count_twice(self, membership, kingdom):
        for user_id in (2, 3, 4):
            membership.assign_rank(kingdom.id, 1, user_id, RankTier.SECRETARY)
        membership.assign_rank(kingdom.id, 1, 4, RankTier.SECRETARY)

    def test_demotion(self, membership, kingdom):
        membership.assign_rank(kingdom.id, 1, 2, RankTier.SECRETARY)
        membership.assign_rank(kingdom.id, 1, 2, RankTier.MEMBER)
        assert membership.rank_in(kingdom.id, 2) == RankTier.MEMBER

    def test_only_sovereign_assigns(self, membership, kingdom):
        membership.assign_rank(kingdom.id, 1, 2, RankTier.SECRETARY)
        with pytest.raises(PermissionDenied, match="Only the sovereign"):
            membership.assign_rank(kingdom.id, 2, 3, RankTier.SECRETARY)

    def test_outsider_cannot_assign(self, membership, kingdom):
        with pytest.raises(PermissionDenied):
            membership.assign_rank(kingdom.id, 99, 3, RankTier.SECRETARY)

    def test_cannot_change_own_rank(self, membership, kingdom):
        with pytest.raises(PermissionDenied, match="own rank"):
            membership.assign_rank(kingdom.id, 1, 1, RankTier.MEMBER)

    def test_sovereignty_is_not_assignable(self, membership, kingdom):
        with pytest.raises(PermissionDenied, match="uprising"):
            membership.assign_rank(kingdom.id, 1, 2, RankTier.SOVEREIGN)

    def test_target_must_be_member(self, membership, kingdom):
        with pytest.raises(NotFound):
            membership.assign_rank(kingdom.id, 1, 99, RankTier.SECRETARY)


class TestTransferSovereignty:
    def test_swap(self, session, membership, kingdom):
        previous = membership.transfer_sovereignty(kingdom.id, 3)
        session.commit()

        assert previous == 1
        assert membership.sovereign_of(kingdom.id) == 3
        assert membership.rank_in(kingdom.id, 1) == RankTier.MEMBER

    def test_same_holder_is_a_no_op(self, membership, kingdom):
        assert membership.transfer_sovereignty(kingdom.id, 1) == 1
        assert membership.sovereign_of(kingdom.id) == 1

    def test_heir_must_be_member(self, membership, kingdom):
        with pytest.raises(NotFound):
            membership.transfer_sovereignty(kingdom.id, 99)
