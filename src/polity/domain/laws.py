"""Law catalog, permission predicates and vote arithmetic.

Every law type carries one :class:`GovernanceRule` per governance type in
which it can be proposed.  The registry is immutable; the proposal engine
consults it before creating a proposal (``can_propose``) and before
accepting a vote (``can_vote``).

Adding a law means adding a :class:`LawDefinition` to ``LAW_CATALOG`` with a
metadata model describing its payload.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .enums import (
    GovernanceType,
    LawType,
    PassingCondition,
    ProposalStatus,
    RankTier,
    VoteAccess,
    VoteChoice,
)
from .errors import InvalidProposal, LawNotAvailable
from .ranks import is_council, is_sovereign, normalize_governance_type

SUPERMAJORITY_RATIO = 0.67
MAX_CURRENCY_ISSUE = 1_000_000

_DURATION_PATTERN = re.compile(r"^(\d+)([smhd])$")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(text: str) -> timedelta:
    """Parse ``"24h"``-style durations."""

    match = _DURATION_PATTERN.match(text.strip())
    if match is None:
        raise ValueError(f"Invalid time format: {text}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


# --- Metadata payloads ------------------------------------------------------------


class LawMetadata(BaseModel):
    """Base payload; unknown keys are kept so clients can attach notes."""

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)


class TargetCommunityMetadata(LawMetadata):
    target_community_id: int = Field(..., gt=0)


class HeirMetadata(LawMetadata):
    target_user_id: int = Field(..., gt=0)


class GovernanceChangeMetadata(LawMetadata):
    new_governance_type: GovernanceType


class AnnouncementMetadata(LawMetadata):
    title: str = Field(..., min_length=1, max_length=120)
    content: str = Field(..., min_length=1, max_length=2000)


class WorkTaxMetadata(LawMetadata):
    tax_rate: float = Field(..., ge=0.0, le=1.0)


class ImportTariffMetadata(LawMetadata):
    tariff_rate: float = Field(..., ge=0.0, le=1.0)


class CurrencyIssueMetadata(LawMetadata):
    gold_amount: float = Field(..., gt=0, le=MAX_CURRENCY_ISSUE)
    conversion_rate: float = Field(..., gt=0)


# --- Rules and definitions --------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GovernanceRule:
    """How one law behaves under one governance type."""

    propose_ranks: frozenset[int]
    vote_access: VoteAccess
    passing_condition: PassingCondition
    time_to_pass: str
    can_fast_track: bool
    description: str = ""

    @property
    def voting_window(self) -> timedelta:
        return parse_duration(self.time_to_pass)

    @property
    def is_decree(self) -> bool:
        return self.passing_condition == PassingCondition.SOVEREIGN_ONLY


@dataclass(frozen=True, slots=True)
class LawDefinition:
    law_type: LawType
    label: str
    description: str
    icon: str
    metadata_model: type[LawMetadata]
    rules: Mapping[GovernanceType, GovernanceRule]
    bi_communal: bool = False
    allows_concurrent: bool = False
    targets_community: bool = False


def voter_admitted(vote_access: VoteAccess, rank: int) -> bool:
    if vote_access == VoteAccess.SOVEREIGN_ONLY:
        return is_sovereign(rank)
    if vote_access == VoteAccess.COUNCIL_ONLY:
        return is_council(rank)
    return True


def _ranks(*ranks: int) -> frozenset[int]:
    return frozenset(int(rank) for rank in ranks)


_SOVEREIGN = _ranks(RankTier.SOVEREIGN)
_COUNCIL = _ranks(RankTier.SOVEREIGN, RankTier.SECRETARY)
_EVERYONE = _ranks(RankTier.SOVEREIGN, RankTier.SECRETARY, RankTier.MEMBER)


LAW_CATALOG: tuple[LawDefinition, ...] = (
    LawDefinition(
        law_type=LawType.DECLARE_WAR,
        label="Declare War",
        description="Initiate hostilities with another community.",
        icon="swords",
        metadata_model=TargetCommunityMetadata,
        allows_concurrent=True,
        targets_community=True,
        rules={
            GovernanceType.MONARCHY: GovernanceRule(
                propose_ranks=_SOVEREIGN,
                vote_access=VoteAccess.COUNCIL_ONLY,
                passing_condition=PassingCondition.SOVEREIGN_ONLY,
                time_to_pass="24h",
                can_fast_track=True,
                description="Only the sovereign can declare war. Secretaries provide counsel.",
            ),
            GovernanceType.DEMOCRACY: GovernanceRule(
                propose_ranks=_EVERYONE,
                vote_access=VoteAccess.ALL_MEMBERS,
                passing_condition=PassingCondition.MAJORITY_VOTE,
                time_to_pass="48h",
                can_fast_track=False,
                description="Any member can propose war. Majority vote decides.",
            ),
        },
    ),
    LawDefinition(
        law_type=LawType.PROPOSE_HEIR,
        label="Propose Heir",
        description="Designate the future ruler of your dynasty.",
        icon="crown",
        metadata_model=HeirMetadata,
        rules={
            GovernanceType.MONARCHY: GovernanceRule(
                propose_ranks=_SOVEREIGN,
                vote_access=VoteAccess.COUNCIL_ONLY,
                passing_condition=PassingCondition.SOVEREIGN_ONLY,
                time_to_pass="12h",
                can_fast_track=True,
                description="Only the sovereign can choose their heir.",
            ),
        },
    ),
    LawDefinition(
        law_type=LawType.CHANGE_GOVERNANCE,
        label="Change Governance Type",
        description="Reshape how your community makes decisions.",
        icon="gavel",
        metadata_model=GovernanceChangeMetadata,
        rules={
            GovernanceType.MONARCHY: GovernanceRule(
                propose_ranks=_SOVEREIGN,
                vote_access=VoteAccess.COUNCIL_ONLY,
                passing_condition=PassingCondition.SOVEREIGN_ONLY,
                time_to_pass="48h",
                can_fast_track=True,
                description="Sovereign must decree the shift.",
            ),
            GovernanceType.DEMOCRACY: GovernanceRule(
                propose_ranks=_COUNCIL,
                vote_access=VoteAccess.ALL_MEMBERS,
                passing_condition=PassingCondition.SUPERMAJORITY_VOTE,
                time_to_pass="48h",
                can_fast_track=False,
                description="Changing the constitution needs two thirds of the votes cast.",
            ),
        },
    ),
    LawDefinition(
        law_type=LawType.MESSAGE_OF_THE_DAY,
        label="Broadcast Announcement",
        description="Post a battle order, strategy, or command to your community.",
        icon="megaphone",
        metadata_model=AnnouncementMetadata,
        allows_concurrent=True,
        rules={
            GovernanceType.MONARCHY: GovernanceRule(
                propose_ranks=_SOVEREIGN,
                vote_access=VoteAccess.SOVEREIGN_ONLY,
                passing_condition=PassingCondition.SOVEREIGN_ONLY,
                time_to_pass="0h",
                can_fast_track=False,
                description="Sovereign broadcasts instantly.",
            ),
        },
    ),
    LawDefinition(
        law_type=LawType.WORK_TAX,
        label="Work Tax Rate",
        description="Set the tax rate on all work actions.",
        icon="coins",
        metadata_model=WorkTaxMetadata,
        rules={
            GovernanceType.MONARCHY: GovernanceRule(
                propose_ranks=_SOVEREIGN,
                vote_access=VoteAccess.SOVEREIGN_ONLY,
                passing_condition=PassingCondition.SOVEREIGN_ONLY,
                time_to_pass="0h",
                can_fast_track=False,
                description="Sovereign sets the work tax rate.",
            ),
            GovernanceType.DEMOCRACY: GovernanceRule(
                propose_ranks=_COUNCIL,
                vote_access=VoteAccess.COUNCIL_ONLY,
                passing_condition=PassingCondition.MAJORITY_VOTE,
                time_to_pass="24h",
                can_fast_track=False,
                description="The cabinet votes on the work tax rate.",
            ),
        },
    ),
    LawDefinition(
        law_type=LawType.IMPORT_TARIFF,
        label="Import Tariff (Tax)",
        description="Set the tariff on goods sold by merchants from other communities.",
        icon="package",
        metadata_model=ImportTariffMetadata,
        rules={
            GovernanceType.MONARCHY: GovernanceRule(
                propose_ranks=_SOVEREIGN,
                vote_access=VoteAccess.SOVEREIGN_ONLY,
                passing_condition=PassingCondition.SOVEREIGN_ONLY,
                time_to_pass="0h",
                can_fast_track=False,
                description="Sovereign sets the import tariff rate.",
            ),
            GovernanceType.DEMOCRACY: GovernanceRule(
                propose_ranks=_COUNCIL,
                vote_access=VoteAccess.COUNCIL_ONLY,
                passing_condition=PassingCondition.MAJORITY_VOTE,
                time_to_pass="24h",
                can_fast_track=False,
                description="The cabinet votes on the import tariff.",
            ),
        },
    ),
    LawDefinition(
        law_type=LawType.CFC_ALLIANCE,
        label="Combined Front Contract (Alliance)",
        description=(
            "Propose an alliance with another community. Both communities must approve."
        ),
        icon="handshake",
        metadata_model=TargetCommunityMetadata,
        bi_communal=True,
        targets_community=True,
        rules={
            GovernanceType.MONARCHY: GovernanceRule(
                propose_ranks=_SOVEREIGN,
                vote_access=VoteAccess.COUNCIL_ONLY,
                passing_condition=PassingCondition.MAJORITY_VOTE,
                time_to_pass="24h",
                can_fast_track=True,
                description="Sovereign proposes; each council must approve by majority.",
            ),
            GovernanceType.DEMOCRACY: GovernanceRule(
                propose_ranks=_COUNCIL,
                vote_access=VoteAccess.ALL_MEMBERS,
                passing_condition=PassingCondition.MAJORITY_VOTE,
                time_to_pass="48h",
                can_fast_track=False,
                description="All members of each community vote on the alliance.",
            ),
        },
    ),
    LawDefinition(
        law_type=LawType.ISSUE_CURRENCY,
        label="Issue Currency",
        description="Burn treasury gold and mint community currency at a fixed rate.",
        icon="coins",
        metadata_model=CurrencyIssueMetadata,
        rules={
            GovernanceType.MONARCHY: GovernanceRule(
                propose_ranks=_SOVEREIGN,
                vote_access=VoteAccess.SOVEREIGN_ONLY,
                passing_condition=PassingCondition.SOVEREIGN_ONLY,
                time_to_pass="0h",
                can_fast_track=False,
                description="Sovereign issues currency by burning treasury gold.",
            ),
            GovernanceType.DEMOCRACY: GovernanceRule(
                propose_ranks=_COUNCIL,
                vote_access=VoteAccess.ALL_MEMBERS,
                passing_condition=PassingCondition.MAJORITY_VOTE,
                time_to_pass="48h",
                can_fast_track=False,
                description="Leadership proposes; all members vote on monetary policy.",
            ),
        },
    ),
)


class LawRegistry:
    """Read-only lookup over a catalog of law definitions."""

    def __init__(self, definitions: Iterable[LawDefinition]) -> None:
        self._definitions: dict[LawType, LawDefinition] = {
            definition.law_type: definition for definition in definitions
        }

    def __contains__(self, law_type: object) -> bool:
        return law_type in self._definitions

    def definition(self, law_type: str) -> LawDefinition:
        try:
            return self._definitions[LawType(law_type)]
        except (KeyError, ValueError) as exc:
            raise InvalidProposal(f"Unknown law type: {law_type}") from exc

    def rules_for(self, law_type: str, governance_type: str | None) -> GovernanceRule:
        definition = self.definition(law_type)
        governance = normalize_governance_type(governance_type)
        rule = definition.rules.get(governance)
        if rule is None:
            raise LawNotAvailable(
                f'Law "{definition.law_type}" is not available in governance type "{governance}"'
            )
        return rule

    def can_propose(self, law_type: str, governance_type: str | None, rank: int) -> bool:
        return rank in self.rules_for(law_type, governance_type).propose_ranks

    def can_vote(self, law_type: str, governance_type: str | None, rank: int) -> bool:
        return voter_admitted(self.rules_for(law_type, governance_type).vote_access, rank)

    def available_laws(self, governance_type: str | None) -> list[LawDefinition]:
        governance = normalize_governance_type(governance_type)
        return [d for d in self._definitions.values() if governance in d.rules]

    def validate_metadata(
        self,
        law_type: str,
        metadata: Mapping[str, Any] | None,
        *,
        community_id: int,
        governance_type: str | None = None,
    ) -> dict[str, Any]:
        """Validate a law payload and return its cleaned form."""

        definition = self.definition(law_type)
        try:
            payload = definition.metadata_model.model_validate(dict(metadata or {}))
        except ValidationError as exc:
            error = exc.errors()[0]
            location = ".".join(str(part) for part in error["loc"]) or "metadata"
            raise InvalidProposal(f"Invalid {location}: {error['msg']}") from exc

        cleaned = payload.model_dump(mode="json")
        if isinstance(payload, TargetCommunityMetadata) and (
            payload.target_community_id == community_id
        ):
            raise InvalidProposal("Target community must be different from your own community")
        if isinstance(payload, GovernanceChangeMetadata) and governance_type is not None and (
            payload.new_governance_type == normalize_governance_type(governance_type)
        ):
            raise InvalidProposal("Community already uses that governance type")
        return cleaned


DEFAULT_REGISTRY = LawRegistry(LAW_CATALOG)


def rules_for(law_type: str, governance_type: str | None) -> GovernanceRule:
    return DEFAULT_REGISTRY.rules_for(law_type, governance_type)


def can_propose(law_type: str, governance_type: str | None, rank: int) -> bool:
    return DEFAULT_REGISTRY.can_propose(law_type, governance_type, rank)


def can_vote(law_type: str, governance_type: str | None, rank: int) -> bool:
    return DEFAULT_REGISTRY.can_vote(law_type, governance_type, rank)


# --- Tallying ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VoteTally:
    yes: int = 0
    no: int = 0
    sovereign_choice: VoteChoice | None = None

    @property
    def cast(self) -> int:
        return self.yes + self.no


def tally_passes(tally: VoteTally, condition: PassingCondition) -> bool:
    """Whether a tally counts as approval under ``condition``."""

    if condition == PassingCondition.SOVEREIGN_ONLY:
        return tally.sovereign_choice == VoteChoice.YES
    if condition == PassingCondition.MAJORITY_VOTE:
        return tally.yes > tally.no
    if condition == PassingCondition.SUPERMAJORITY_VOTE:
        return tally.cast > 0 and tally.yes / tally.cast >= SUPERMAJORITY_RATIO
    if condition == PassingCondition.UNANIMOUS:
        return tally.cast > 0 and tally.no == 0
    return False


def final_outcome(tally: VoteTally, condition: PassingCondition) -> ProposalStatus:
    """Outcome once the voting window has closed."""

    if tally.cast == 0:
        return ProposalStatus.EXPIRED
    return ProposalStatus.PASSED if tally_passes(tally, condition) else ProposalStatus.REJECTED


def decided_outcome(
    tally: VoteTally, condition: PassingCondition, eligible: int
) -> ProposalStatus | None:
    """Outcome that the remaining eligible voters can no longer change, if any."""

    if tally.cast == 0:
        return None
    if condition == PassingCondition.SOVEREIGN_ONLY:
        if tally.sovereign_choice is None:
            return None
        return (
            ProposalStatus.PASSED
            if tally.sovereign_choice == VoteChoice.YES
            else ProposalStatus.REJECTED
        )

    remaining = max(0, eligible - tally.cast)
    if tally_passes(VoteTally(tally.yes, tally.no + remaining), condition):
        return ProposalStatus.PASSED
    if not tally_passes(VoteTally(tally.yes + remaining, tally.no), condition):
        return ProposalStatus.REJECTED
    return None


@dataclass(frozen=True, slots=True)
class SideTally:
    """Votes cast by one community on a bi-communal proposal."""

    community_id: int
    condition: PassingCondition
    eligible: int
    tally: VoteTally = field(default_factory=VoteTally)

    @property
    def approved(self) -> bool:
        return self.tally.cast > 0 and tally_passes(self.tally, self.condition)

    @property
    def decided(self) -> ProposalStatus | None:
        return decided_outcome(self.tally, self.condition, self.eligible)


def alliance_outcome(
    initiator: SideTally, target: SideTally, *, window_closed: bool
) -> ProposalStatus | None:
    """Combine both sides of an alliance vote.

    Before the window closes the proposal can only pass, and only once both
    sides are decided in favour.  At window close one-sided approval is a
    rejection.
    """

    if window_closed:
        if initiator.tally.cast == 0 and target.tally.cast == 0:
            return ProposalStatus.EXPIRED
        if initiator.approved and target.approved:
            return ProposalStatus.PASSED
        return ProposalStatus.REJECTED
    if initiator.decided == ProposalStatus.PASSED and target.decided == ProposalStatus.PASSED:
        return ProposalStatus.PASSED
    return None


def half_approved(initiator: SideTally, target: SideTally) -> bool:
    """Exactly one side currently approves."""

    return initiator.approved != target.approved
