"""Membership directory for communities.

This is the only place that reads ``Member`` rows for rank decisions: legacy
``role`` strings are normalised here through :func:`rank_of`, and the
sovereign is always looked up by query rather than cached on the community.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from polity.domain.enums import GovernanceType, RankTier, VoteAccess
from polity.domain.errors import Conflict, NotFound, PermissionDenied
from polity.domain.laws import voter_admitted
from polity.domain.ranks import (
    can_assign_ranks,
    is_sovereign,
    normalize_governance_type,
    rank_label,
    rank_of,
    validate_rank_assignment,
)
from polity.models import Community, Member, utc_now
from polity.services.locks import COMMUNITY, DEFAULT_LOCKS, AggregateLocks

logger = logging.getLogger(__name__)


class MembershipService:
    """Community rosters, rank assignment and sovereignty hand-over."""

    def __init__(
        self,
        session: Session,
        *,
        locks: AggregateLocks = DEFAULT_LOCKS,
        clock: Callable[[], datetime] = utc_now,
        default_governance_type: GovernanceType = GovernanceType.MONARCHY,
    ):
        self.session = session
        self.locks = locks
        self.clock = clock
        self.default_governance_type = default_governance_type

    # --- Communities ------------------------------------------------------------------

    def create_community(
        self, name: str, founder_id: int, governance_type: str | None = None
    ) -> Community:
        """Create a community with ``founder_id`` as its sovereign.

        Without an explicit ``governance_type`` the configured default applies.
        """

        name = name.strip()
        if not name:
            raise Conflict("Community name must not be empty")
        governance = normalize_governance_type(governance_type or self.default_governance_type)
        existing = self.session.scalar(select(Community.id).where(Community.name == name))
        if existing is not None:
            raise Conflict(f"A community named {name!r} already exists")

        now = self.clock()
        community = Community(
            name=name, governance_type=str(governance), members_count=1, created_at=now
        )
        self.session.add(community)
        try:
            self.session.flush()
            self.session.add(
                Member(
                    community_id=community.id,
                    user_id=founder_id,
                    rank_tier=int(RankTier.SOVEREIGN),
                    joined_at=now,
                )
            )
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict(f"A community named {name!r} already exists") from exc
        logger.info("Community %s created by user %s (%s)", community.id, founder_id, governance)
        return community

    def get_community(self, community_id: int) -> Community:
        community = self.session.get(Community, community_id)
        if community is None:
            raise NotFound(f"Community {community_id} not found")
        return community

    def list_communities(self) -> list[Community]:
        return list(self.session.scalars(select(Community).order_by(Community.id)))

    # --- Roster -----------------------------------------------------------------------

    def join(self, community_id: int, user_id: int) -> Member:
        """Add ``user_id`` as an ordinary member."""

        with self.locks.hold(COMMUNITY, community_id):
            community = self.get_community(community_id)
            if self.member(community_id, user_id) is not None:
                raise Conflict("You are already a member of this community")
            member = Member(
                community_id=community_id,
                user_id=user_id,
                rank_tier=int(RankTier.MEMBER),
                joined_at=self.clock(),
            )
            self.session.add(member)
            community.members_count = (community.members_count or 0) + 1
            try:
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                raise Conflict("You are already a member of this community") from exc
        logger.info("User %s joined community %s", user_id, community_id)
        return member

    def member(self, community_id: int, user_id: int) -> Member | None:
        return self.session.scalar(
            select(Member).where(Member.community_id == community_id, Member.user_id == user_id)
        )

    def list_members(self, community_id: int) -> list[Member]:
        members = self.session.scalars(
            select(Member).where(Member.community_id == community_id).order_by(Member.id)
        )
        return sorted(members, key=lambda m: (rank_of(m), m.id))

    def rank_in(self, community_id: int, user_id: int) -> int | None:
        member = self.member(community_id, user_id)
        return rank_of(member) if member is not None else None

    def sovereign_of(self, community_id: int) -> int | None:
        # Legacy rows may only carry role='founder'
        return self.session.scalar(
            select(Member.user_id)
            .where(
                Member.community_id == community_id,
                or_(
                    Member.rank_tier == int(RankTier.SOVEREIGN),
                    and_(Member.rank_tier.is_(None), func.lower(Member.role) == "founder"),
                ),
            )
            .order_by(Member.id)
            .limit(1)
        )

    def count_members(self, community_id: int, *, exclude_sovereign: bool = False) -> int:
        members = self.session.scalars(select(Member).where(Member.community_id == community_id))
        return sum(1 for m in members if not (exclude_sovereign and is_sovereign(rank_of(m))))

    def count_eligible(self, community_id: int, vote_access: VoteAccess) -> int:
        members = self.session.scalars(select(Member).where(Member.community_id == community_id))
        return sum(1 for m in members if voter_admitted(vote_access, rank_of(m)))

    def count_with_rank(self, community_id: int, rank: int, *, excluding_user: int | None = None) -> int:
        members = self.session.scalars(select(Member).where(Member.community_id == community_id))
        return sum(1 for m in members if rank_of(m) == rank and m.user_id != excluding_user)

    # --- Ranks ------------------------------------------------------------------------

    def assign_rank(
        self, community_id: int, actor_id: int, target_user_id: int, rank: int
    ) -> Member:
        """Change another member's rank, honouring the seat limits."""

        with self.locks.hold(COMMUNITY, community_id):
            community = self.get_community(community_id)
            actor_rank = self.rank_in(community_id, actor_id)
            if actor_rank is None or not can_assign_ranks(community.governance_type, actor_rank):
                raise PermissionDenied("Only the sovereign can assign ranks")
            if actor_id == target_user_id:
                raise PermissionDenied("You cannot change your own rank")
            target = self.member(community_id, target_user_id)
            if target is None:
                raise NotFound(f"User {target_user_id} is not a member of this community")
            if is_sovereign(rank):
                raise PermissionDenied("Sovereignty can only change hands through an uprising")

            current = self.count_with_rank(community_id, rank, excluding_user=target_user_id)
            validate_rank_assignment(community.governance_type, rank, current)

            target.rank_tier = rank
            target.role = None
            self.session.commit()
        logger.info(
            "User %s set user %s to %s in community %s",
            actor_id,
            target_user_id,
            rank_label(community.governance_type, rank),
            community_id,
        )
        return target

    def transfer_sovereignty(self, community_id: int, new_sovereign_id: int) -> int | None:
        """Promote ``new_sovereign_id`` to rank 0 and demote the previous holder.

        Flushes but does not commit; the caller owns the transaction.
        """

        previous = self.sovereign_of(community_id)
        if previous == new_sovereign_id:
            return previous
        if previous is not None:
            old = self.member(community_id, previous)
            if old is not None:
                old.rank_tier = int(RankTier.MEMBER)
                old.role = None
                # Free the single-sovereign slot before promoting
                self.session.flush()

        heir = self.member(community_id, new_sovereign_id)
        if heir is None:
            raise NotFound(f"User {new_sovereign_id} is not a member of this community")
        heir.rank_tier = int(RankTier.SOVEREIGN)
        heir.role = None
        self.session.flush()
        logger.info(
            "Sovereignty of community %s passed from user %s to user %s",
            community_id,
            previous,
            new_sovereign_id,
        )
        return previous
