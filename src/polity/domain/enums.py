"""Enumerations shared by the governance and uprising rules."""

from __future__ import annotations

from enum import IntEnum, StrEnum


class GovernanceType(StrEnum):
    """How a community makes decisions."""

    MONARCHY = "monarchy"
    DEMOCRACY = "democracy"


class RankTier(IntEnum):
    """Canonical rank tiers. Lower is more senior."""

    SOVEREIGN = 0
    SECRETARY = 1
    MEMBER = 10


class LawType(StrEnum):
    """Catalog keys for every law that can be proposed."""

    DECLARE_WAR = "DECLARE_WAR"
    PROPOSE_HEIR = "PROPOSE_HEIR"
    CHANGE_GOVERNANCE = "CHANGE_GOVERNANCE"
    MESSAGE_OF_THE_DAY = "MESSAGE_OF_THE_DAY"
    WORK_TAX = "WORK_TAX"
    IMPORT_TARIFF = "IMPORT_TARIFF"
    CFC_ALLIANCE = "CFC_ALLIANCE"
    ISSUE_CURRENCY = "ISSUE_CURRENCY"


class VoteAccess(StrEnum):
    """Who may cast a vote on a law."""

    SOVEREIGN_ONLY = "sovereign_only"
    COUNCIL_ONLY = "council_only"
    ALL_MEMBERS = "all_members"


class PassingCondition(StrEnum):
    """Vote aggregation rule deciding whether a tally counts as approval."""

    SOVEREIGN_ONLY = "sovereign_only"
    MAJORITY_VOTE = "majority_vote"
    SUPERMAJORITY_VOTE = "supermajority_vote"
    UNANIMOUS = "unanimous"


class ProposalStatus(StrEnum):
    """Proposal lifecycle states."""

    PENDING = "pending"
    PASSED = "passed"
    REJECTED = "rejected"
    EXPIRED = "expired"
    FAILED = "failed"


class VoteChoice(StrEnum):
    YES = "yes"
    NO = "no"


class RebellionStatus(StrEnum):
    """Uprising phases."""

    AGITATION = "agitation"
    BATTLE = "battle"
    RESOLVED = "resolved"


class NegotiationStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class BattleOutcome(StrEnum):
    """Result of a civil war, from the rebels' point of view."""

    WON = "won"
    LOST = "lost"


class RebellionOutcome(StrEnum):
    """Read-time classification of a resolved rebellion."""

    NEGOTIATED = "negotiated"
    OVERTHROWN = "overthrown"
    SUPPRESSED = "suppressed"
    FIZZLED = "fizzled"


class CooldownReason(StrEnum):
    NEGOTIATION = "negotiation"
    FAILURE = "failure"


class CivilWarStatus(StrEnum):
    ACTIVE = "active"
    REVOLUTIONARY_WIN = "revolutionary_win"
    GOVERNMENT_WIN = "government_win"


TERMINAL_PROPOSAL_STATUSES = frozenset(
    {
        ProposalStatus.PASSED,
        ProposalStatus.REJECTED,
        ProposalStatus.EXPIRED,
        ProposalStatus.FAILED,
    }
)

ACTIVE_REBELLION_STATUSES = frozenset({RebellionStatus.AGITATION, RebellionStatus.BATTLE})
