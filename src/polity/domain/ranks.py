"""Rank hierarchy and per-governance seat configuration.

Rank tiers are plain integers: 0 is the sovereign, 1 a secretary/advisor and
anything from 10 upwards an ordinary member.  Older member records carry a
``role`` string instead of a tier; :func:`rank_of` is the single place that
turns either representation into the canonical integer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .enums import GovernanceType, RankTier
from .errors import Conflict, InvalidGovernanceType, InvalidProposal

LEGACY_ROLE_RANKS: dict[str, int] = {
    "founder": RankTier.SOVEREIGN,
    "leader": RankTier.SECRETARY,
}


class RankedMember(Protocol):
    rank_tier: int | None
    role: str | None


@dataclass(frozen=True, slots=True)
class RankSeat:
    """One rank of a governance type and how many members may hold it."""

    rank: int
    label: str
    max_count: int | None  # None = unlimited
    icon: str = ""


@dataclass(frozen=True, slots=True)
class GovernanceProfile:
    """Labels, seats and assignment rights for a governance type."""

    governance_type: GovernanceType
    label: str
    description: str
    seats: tuple[RankSeat, ...]
    assigning_ranks: frozenset[int]

    def seat(self, rank: int) -> RankSeat | None:
        for seat in self.seats:
            if seat.rank == rank:
                return seat
        return None


GOVERNANCE_PROFILES: dict[GovernanceType, GovernanceProfile] = {
    GovernanceType.MONARCHY: GovernanceProfile(
        governance_type=GovernanceType.MONARCHY,
        label="Kingdom",
        description="Ruled by a single sovereign with appointed advisors",
        seats=(
            RankSeat(RankTier.SOVEREIGN, "King/Queen", 1, "crown"),
            RankSeat(RankTier.SECRETARY, "Secretary", 3, "user-cog"),
            RankSeat(RankTier.MEMBER, "Member", None, "users"),
        ),
        assigning_ranks=frozenset({RankTier.SOVEREIGN}),
    ),
    GovernanceType.DEMOCRACY: GovernanceProfile(
        governance_type=GovernanceType.DEMOCRACY,
        label="Republic",
        description="Led by an elected head with a cabinet of ministers",
        seats=(
            RankSeat(RankTier.SOVEREIGN, "President", 1, "landmark"),
            RankSeat(RankTier.SECRETARY, "Minister", 5, "user-cog"),
            RankSeat(RankTier.MEMBER, "Citizen", None, "users"),
        ),
        assigning_ranks=frozenset({RankTier.SOVEREIGN}),
    ),
}


def normalize_role(role: str | None) -> int:
    """Map a legacy role string onto a rank tier."""

    if role is None:
        return int(RankTier.MEMBER)
    return int(LEGACY_ROLE_RANKS.get(role.strip().lower(), RankTier.MEMBER))


def rank_of(member: RankedMember) -> int:
    """Canonical rank of a member record, falling back to its legacy role."""

    if member.rank_tier is not None:
        return int(member.rank_tier)
    return normalize_role(member.role)


def is_sovereign(rank: int | None) -> bool:
    return rank == RankTier.SOVEREIGN


def is_council(rank: int | None) -> bool:
    """Sovereign and secretaries both sit on the council."""

    return rank is not None and rank <= RankTier.SECRETARY


def normalize_governance_type(governance_type: str | None) -> GovernanceType:
    """Coerce a stored governance type string, defaulting to monarchy."""

    if not governance_type:
        return GovernanceType.MONARCHY
    try:
        return GovernanceType(governance_type.strip().lower())
    except ValueError as exc:
        raise InvalidGovernanceType(f"Unknown governance type: {governance_type}") from exc


def governance_profile(governance_type: str | None) -> GovernanceProfile:
    return GOVERNANCE_PROFILES[normalize_governance_type(governance_type)]


def seat_limit(governance_type: str | None, rank: int) -> int | None:
    """Configured cap for a rank, or ``None`` when the rank is unlimited."""

    seat = governance_profile(governance_type).seat(rank)
    if seat is None:
        raise InvalidProposal(f"Invalid rank tier: {rank}")
    return seat.max_count


def rank_label(governance_type: str | None, rank: int) -> str:
    seat = governance_profile(governance_type).seat(rank)
    return seat.label if seat is not None else f"Rank {rank}"


def can_assign_ranks(governance_type: str | None, rank: int) -> bool:
    return rank in governance_profile(governance_type).assigning_ranks


def validate_rank_assignment(governance_type: str | None, rank: int, current_count: int) -> None:
    """Reject an assignment that would exceed the rank's seat limit.

    ``current_count`` is the number of members already holding ``rank``,
    not counting the member being assigned.
    """

    seat = governance_profile(governance_type).seat(rank)
    if seat is None:
        raise InvalidProposal(f"Invalid rank tier: {rank}")
    if seat.max_count is not None and current_count >= seat.max_count:
        raise Conflict(f"Cannot assign more than {seat.max_count} {seat.label}(s)")
