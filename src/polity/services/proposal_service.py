"""Proposal lifecycle: propose, vote, resolve, fast-track and apply effects.

Status transitions::

    pending --(decided early / window close / fast-track)--> passed | rejected
    pending --(window close with no votes)--------------------> expired
    passed  --(effect raised or timed out)--------------------> failed

Every transition out of ``pending`` is a compare-and-set update on the
status column taken while holding the proposal's aggregate lock, so however
many readers notice an expired proposal at once, exactly one of them wins
and only the winner invokes the effect collaborator.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from polity.config import Settings, get_settings
from polity.domain.enums import (
    TERMINAL_PROPOSAL_STATUSES,
    LawType,
    ProposalStatus,
    VoteChoice,
)
from polity.domain.errors import Conflict, InvalidProposal, NotFound, PermissionDenied
from polity.domain.laws import (
    DEFAULT_REGISTRY,
    GovernanceRule,
    LawRegistry,
    SideTally,
    VoteTally,
    alliance_outcome,
    decided_outcome,
    final_outcome,
    half_approved,
)
from polity.domain.ranks import is_sovereign, rank_label
from polity.interfaces import IEffectApplier, IMembershipService, LawEffect
from polity.models import Community, Proposal, ProposalVote, utc_now
from polity.services.effect_service import alliance_between, count_active_alliances
from polity.services.locks import COMMUNITY, DEFAULT_LOCKS, PROPOSAL, AggregateLocks

logger = logging.getLogger(__name__)

_EFFECT_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="law-effect")


@dataclass(slots=True)
class SideCounts:
    """Per-community vote counts on an alliance proposal."""

    community_id: int
    yes: int
    no: int
    eligible: int
    approved: bool


@dataclass(slots=True)
class ProposalSummary:
    """Read model returned by every proposal operation."""

    proposal: Proposal
    yes_votes: int = 0
    no_votes: int = 0
    sides: list[SideCounts] = field(default_factory=list)
    half_approved: bool = False

    @property
    def id(self) -> int:
        return self.proposal.id

    @property
    def status(self) -> str:
        return self.proposal.status


class ProposalService:
    """Service implementing the law proposal lifecycle."""

    def __init__(
        self,
        session: Session,
        membership: IMembershipService,
        effects: IEffectApplier,
        *,
        registry: LawRegistry = DEFAULT_REGISTRY,
        settings: Settings | None = None,
        locks: AggregateLocks = DEFAULT_LOCKS,
        clock: Callable[[], datetime] = utc_now,
        executor: Executor | None = None,
    ):
        self.session = session
        self.membership = membership
        self.effects = effects
        self.registry = registry
        self.settings = settings or get_settings()
        self.locks = locks
        self.clock = clock
        self.executor = executor or _EFFECT_EXECUTOR

    # --- Commands ---------------------------------------------------------------------

    def propose(
        self,
        community_id: int,
        law_type: str,
        proposer_id: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> ProposalSummary:
        """Create a proposal, or pass it at once when it is a sovereign decree."""

        community = self._community(community_id)
        rank = self.membership.rank_in(community_id, proposer_id)
        if rank is None:
            raise PermissionDenied("You must be a member of this community to propose laws")

        definition = self.registry.definition(law_type)
        rule = self.registry.rules_for(law_type, community.governance_type)
        if not self.registry.can_propose(law_type, community.governance_type, rank):
            raise PermissionDenied(
                f"A {rank_label(community.governance_type, rank)} cannot propose "
                f"{definition.label} in this community"
            )

        cleaned = self.registry.validate_metadata(
            law_type,
            metadata,
            community_id=community_id,
            governance_type=community.governance_type,
        )
        target_id: int | None = None
        if definition.targets_community:
            target_id = int(cleaned["target_community_id"])
            if self.session.get(Community, target_id) is None:
                raise InvalidProposal("Target community not found")
        if definition.bi_communal and target_id is not None:
            self._check_alliance_possible(community_id, target_id)

        now = self.clock()
        decree = rule.is_decree and not definition.bi_communal
        with self.locks.hold(COMMUNITY, community_id):
            if not definition.allows_concurrent:
                self._check_no_pending(community_id, definition.law_type, definition.label)
            if definition.law_type == LawType.MESSAGE_OF_THE_DAY:
                self._check_announcement_cooldown(community_id, now)

            proposal = Proposal(
                community_id=community_id,
                law_type=str(definition.law_type),
                proposer_id=proposer_id,
                metadata_json=cleaned,
                target_community_id=target_id,
                status=str(ProposalStatus.PENDING),
                created_at=now,
                expires_at=now + rule.voting_window,
            )
            if decree:
                proposal.status = str(ProposalStatus.PASSED)
                proposal.resolved_at = now
                proposal.resolution_notes = "Decreed by the sovereign"
            self.session.add(proposal)
            self.session.commit()

        logger.info(
            "Proposal %s (%s) created in community %s by user %s: %s",
            proposal.id,
            proposal.law_type,
            community_id,
            proposer_id,
            proposal.status,
        )
        if decree:
            self._apply_effect(proposal)
        return self._summarize(proposal)

    def vote(self, proposal_id: int, voter_id: int, choice: str) -> ProposalSummary:
        """Record a vote and resolve early if the outcome can no longer change."""

        try:
            choice = VoteChoice(str(choice).lower())
        except ValueError as exc:
            raise InvalidProposal(f"Invalid vote choice: {choice}") from exc

        self._resolve_if_due(proposal_id)
        passed = False
        with self.locks.hold(PROPOSAL, proposal_id):
            proposal = self._load(proposal_id, for_update=True)
            if proposal.status != ProposalStatus.PENDING:
                raise Conflict("This proposal is no longer open for voting")

            side_id, rank = self._voter_side(proposal, voter_id)
            side_governance = self._community(side_id).governance_type
            if self._has_voted(proposal_id, voter_id):
                raise Conflict("You have already voted on this proposal")
            if not self.registry.can_vote(proposal.law_type, side_governance, rank):
                raise PermissionDenied(
                    f"A {rank_label(side_governance, rank)} cannot vote on this proposal"
                )

            self.session.add(
                ProposalVote(
                    proposal_id=proposal_id,
                    user_id=voter_id,
                    voter_community_id=side_id,
                    choice=str(choice),
                    created_at=self.clock(),
                )
            )
            try:
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                raise Conflict("You have already voted on this proposal") from exc
            logger.info("User %s voted %s on proposal %s", voter_id, choice, proposal_id)

            outcome = self._early_outcome(proposal)
            if outcome is not None:
                notes = "Outcome decided before the voting window closed"
                passed = self._transition(proposal, outcome, notes) and (
                    outcome == ProposalStatus.PASSED
                )

        if passed:
            self._apply_effect(proposal)
        return self._summarize(proposal)

    def resolve(self, proposal_id: int) -> ProposalSummary:
        """Close the proposal if its window has elapsed; no-op otherwise."""

        self._resolve_if_due(proposal_id)
        return self._summarize(self._load(proposal_id))

    def fast_track(self, proposal_id: int, actor_id: int) -> ProposalSummary:
        """Sovereign override: tally the current votes immediately."""

        self._resolve_if_due(proposal_id)
        passed = False
        with self.locks.hold(PROPOSAL, proposal_id):
            proposal = self._load(proposal_id, for_update=True)
            if proposal.status != ProposalStatus.PENDING:
                raise Conflict("Only pending proposals can be fast-tracked")
            community = self._community(proposal.community_id)
            if not is_sovereign(self.membership.rank_in(community.id, actor_id)):
                raise PermissionDenied("Only the sovereign can fast-track proposals")
            rule = self.registry.rules_for(proposal.law_type, community.governance_type)
            if not rule.can_fast_track:
                raise PermissionDenied("This law cannot be fast-tracked")

            outcome = self._closing_outcome(proposal)
            passed = self._transition(
                proposal, outcome, f"Fast-tracked by user {actor_id}"
            ) and (outcome == ProposalStatus.PASSED)

        if passed:
            self._apply_effect(proposal)
        return self._summarize(proposal)

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Close every overdue proposal and fail passed laws whose effect never landed.

        Returns:
            Number of proposals whose status changed
        """

        now = now or self.clock()
        due = list(
            self.session.scalars(
                select(Proposal.id).where(
                    Proposal.status == ProposalStatus.PENDING, Proposal.expires_at <= now
                )
            )
        )
        changed = sum(1 for proposal_id in due if self._resolve_if_due(proposal_id, now=now))

        stale_before = now - timedelta(seconds=self.settings.effect_timeout_seconds)
        stale = list(
            self.session.scalars(
                select(Proposal).where(
                    Proposal.status == ProposalStatus.PASSED,
                    Proposal.effect_applied_at.is_(None),
                    Proposal.resolved_at <= stale_before,
                )
            )
        )
        for proposal in stale:
            with self.locks.hold(PROPOSAL, proposal.id):
                if self._mark_failed(proposal, "Effect was never applied"):
                    changed += 1
        if changed:
            logger.info("Proposal sweep changed %d proposal(s)", changed)
        return changed

    # --- Queries ----------------------------------------------------------------------

    def get_proposal(self, proposal_id: int) -> ProposalSummary:
        return self.resolve(proposal_id)

    def list_active(self, community_id: int) -> list[ProposalSummary]:
        """Pending proposals of a community, including alliances aimed at it."""

        self._community(community_id)
        ids = list(
            self.session.scalars(
                select(Proposal.id)
                .where(
                    Proposal.status == ProposalStatus.PENDING,
                    or_(
                        Proposal.community_id == community_id,
                        and_(
                            Proposal.target_community_id == community_id,
                            Proposal.law_type == LawType.CFC_ALLIANCE,
                        ),
                    ),
                )
                .order_by(Proposal.created_at.desc(), Proposal.id.desc())
            )
        )
        summaries = []
        for proposal_id in ids:
            self._resolve_if_due(proposal_id)
            proposal = self._load(proposal_id)
            if proposal.status == ProposalStatus.PENDING:
                summaries.append(self._summarize(proposal))
        return summaries

    def list_resolved(
        self, community_id: int, *, limit: int = 20, offset: int = 0
    ) -> list[ProposalSummary]:
        """Law history of a community, newest first."""

        self._community(community_id)
        proposals = self.session.scalars(
            select(Proposal)
            .where(
                Proposal.community_id == community_id,
                Proposal.status.in_([str(s) for s in TERMINAL_PROPOSAL_STATUSES]),
            )
            .order_by(Proposal.resolved_at.desc(), Proposal.id.desc())
            .limit(max(1, min(limit, 100)))
            .offset(max(0, offset))
        )
        return [self._summarize(p) for p in proposals]

    def list_votes(self, proposal_id: int) -> list[ProposalVote]:
        self._load(proposal_id)
        return list(
            self.session.scalars(
                select(ProposalVote)
                .where(ProposalVote.proposal_id == proposal_id)
                .order_by(ProposalVote.id)
            )
        )

    # --- Resolution -------------------------------------------------------------------

    def _resolve_if_due(self, proposal_id: int, *, now: datetime | None = None) -> bool:
        now = now or self.clock()
        passed = False
        with self.locks.hold(PROPOSAL, proposal_id):
            proposal = self._load(proposal_id)
            if proposal.status != ProposalStatus.PENDING or now < proposal.expires_at:
                return False
            outcome = self._closing_outcome(proposal)
            won = self._transition(proposal, outcome, "Voting window closed", now=now)
            passed = won and outcome == ProposalStatus.PASSED
        if passed:
            self._apply_effect(proposal)
        return won

    def _early_outcome(self, proposal: Proposal) -> ProposalStatus | None:
        if proposal.law_type == LawType.CFC_ALLIANCE:
            initiator, target = self._alliance_sides(proposal)
            return alliance_outcome(initiator, target, window_closed=False)
        rule = self._rule(proposal, proposal.community_id)
        tally = self._tally(proposal, proposal.community_id)
        eligible = self.membership.count_eligible(proposal.community_id, rule.vote_access)
        return decided_outcome(tally, rule.passing_condition, eligible)

    def _closing_outcome(self, proposal: Proposal) -> ProposalStatus:
        if proposal.law_type == LawType.CFC_ALLIANCE:
            initiator, target = self._alliance_sides(proposal)
            outcome = alliance_outcome(initiator, target, window_closed=True)
            assert outcome is not None
            return outcome
        rule = self._rule(proposal, proposal.community_id)
        return final_outcome(self._tally(proposal, proposal.community_id), rule.passing_condition)

    def _transition(
        self,
        proposal: Proposal,
        outcome: ProposalStatus,
        notes: str,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Compare-and-set ``pending -> outcome``; True only for the caller that won."""

        result = self.session.execute(
            update(Proposal)
            .where(Proposal.id == proposal.id, Proposal.status == ProposalStatus.PENDING)
            .values(status=str(outcome), resolved_at=now or self.clock(), resolution_notes=notes)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(proposal)
        won = result.rowcount == 1
        if won:
            logger.info("Proposal %s resolved as %s (%s)", proposal.id, outcome, notes)
        return won

    def _mark_failed(self, proposal: Proposal, notes: str) -> bool:
        result = self.session.execute(
            update(Proposal)
            .where(
                Proposal.id == proposal.id,
                Proposal.status == ProposalStatus.PASSED,
                Proposal.effect_applied_at.is_(None),
            )
            .values(status=str(ProposalStatus.FAILED), resolution_notes=notes)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(proposal)
        return result.rowcount == 1

    def _apply_effect(self, proposal: Proposal) -> None:
        """Run the effect collaborator once, bounded by the configured timeout."""

        effect = LawEffect(
            proposal_id=proposal.id,
            community_id=proposal.community_id,
            law_type=proposal.law_type,
            proposer_id=proposal.proposer_id,
            metadata=dict(proposal.metadata_json or {}),
            target_community_id=proposal.target_community_id,
        )
        future = self.executor.submit(self.effects.apply, effect)
        try:
            future.result(timeout=self.settings.effect_timeout_seconds)
        except TimeoutError:
            future.cancel()
            logger.error(
                "Effect of proposal %s timed out after %ss",
                proposal.id,
                self.settings.effect_timeout_seconds,
            )
            if not self._mark_failed(proposal, "Effect application timed out"):
                logger.warning("Effect of proposal %s landed after its timeout", proposal.id)
            return
        except Exception as exc:
            logger.exception("Effect of proposal %s failed", proposal.id)
            reason = getattr(exc, "reason", None) or str(exc) or type(exc).__name__
            self._mark_failed(proposal, f"Effect application failed: {reason}")
            return

        self.session.execute(
            update(Proposal)
            .where(
                Proposal.id == proposal.id,
                Proposal.status == ProposalStatus.PASSED,
                Proposal.effect_applied_at.is_(None),
            )
            .values(effect_applied_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        # The applier may have written through its own session
        self.session.expire_all()
        self.session.refresh(proposal)
        logger.info("Effect of proposal %s (%s) applied", proposal.id, proposal.law_type)

    # --- Tallies ----------------------------------------------------------------------

    def _rule(self, proposal: Proposal, community_id: int) -> GovernanceRule:
        governance = self._community(community_id).governance_type
        return self.registry.rules_for(proposal.law_type, governance)

    def _tally(self, proposal: Proposal, community_id: int) -> VoteTally:
        rows = self.session.execute(
            select(ProposalVote.user_id, ProposalVote.choice).where(
                ProposalVote.proposal_id == proposal.id,
                ProposalVote.voter_community_id == community_id,
            )
        ).all()
        sovereign = self.membership.sovereign_of(community_id)
        yes = sum(1 for _, choice in rows if choice == VoteChoice.YES)
        sovereign_choice = next(
            (VoteChoice(choice) for user_id, choice in rows if user_id == sovereign), None
        )
        return VoteTally(yes=yes, no=len(rows) - yes, sovereign_choice=sovereign_choice)

    def _side(self, proposal: Proposal, community_id: int) -> SideTally:
        rule = self._rule(proposal, community_id)
        return SideTally(
            community_id=community_id,
            condition=rule.passing_condition,
            eligible=self.membership.count_eligible(community_id, rule.vote_access),
            tally=self._tally(proposal, community_id),
        )

    def _alliance_sides(self, proposal: Proposal) -> tuple[SideTally, SideTally]:
        if proposal.target_community_id is None:
            raise InvalidProposal("Alliance proposal has no target community")
        return (
            self._side(proposal, proposal.community_id),
            self._side(proposal, proposal.target_community_id),
        )

    def _summarize(self, proposal: Proposal) -> ProposalSummary:
        counts = self.session.execute(
            select(ProposalVote.choice, func.count())
            .where(ProposalVote.proposal_id == proposal.id)
            .group_by(ProposalVote.choice)
        ).all()
        by_choice = {choice: count for choice, count in counts}
        summary = ProposalSummary(
            proposal=proposal,
            yes_votes=by_choice.get(VoteChoice.YES, 0),
            no_votes=by_choice.get(VoteChoice.NO, 0),
        )
        if proposal.law_type == LawType.CFC_ALLIANCE and proposal.target_community_id:
            initiator, target = self._alliance_sides(proposal)
            summary.sides = [
                SideCounts(
                    community_id=side.community_id,
                    yes=side.tally.yes,
                    no=side.tally.no,
                    eligible=side.eligible,
                    approved=side.approved,
                )
                for side in (initiator, target)
            ]
            summary.half_approved = proposal.status == ProposalStatus.PENDING and half_approved(
                initiator, target
            )
        return summary

    # --- Guards -----------------------------------------------------------------------

    def _voter_side(self, proposal: Proposal, voter_id: int) -> tuple[int, int]:
        """Community the voter votes for and their rank there."""

        rank = self.membership.rank_in(proposal.community_id, voter_id)
        if rank is not None:
            return proposal.community_id, rank
        if proposal.law_type == LawType.CFC_ALLIANCE and proposal.target_community_id:
            rank = self.membership.rank_in(proposal.target_community_id, voter_id)
            if rank is not None:
                return proposal.target_community_id, rank
        raise PermissionDenied("You must be a member of this community to vote")

    def _has_voted(self, proposal_id: int, voter_id: int) -> bool:
        return (
            self.session.scalar(
                select(ProposalVote.id).where(
                    ProposalVote.proposal_id == proposal_id, ProposalVote.user_id == voter_id
                )
            )
            is not None
        )

    def _check_no_pending(self, community_id: int, law_type: LawType, label: str) -> None:
        pending = self.session.scalar(
            select(Proposal.id).where(
                Proposal.community_id == community_id,
                Proposal.law_type == law_type,
                Proposal.status == ProposalStatus.PENDING,
            )
        )
        if pending is not None:
            raise Conflict(f"A {label} proposal is already pending in this community")

    def _check_announcement_cooldown(self, community_id: int, now: datetime) -> None:
        since = now - self.settings.announcement_cooldown
        recent = self.session.scalar(
            select(Proposal.id).where(
                Proposal.community_id == community_id,
                Proposal.law_type == LawType.MESSAGE_OF_THE_DAY,
                Proposal.status == ProposalStatus.PASSED,
                Proposal.created_at > since,
            )
        )
        if recent is not None:
            raise Conflict("Only one announcement can be broadcast per 24 hours")

    def _check_alliance_possible(self, community_id: int, target_id: int) -> None:
        if alliance_between(self.session, community_id, target_id) is not None:
            raise Conflict("These communities are already allied")
        for side in (community_id, target_id):
            if count_active_alliances(self.session, side) >= self.settings.max_active_alliances:
                raise Conflict(
                    f"Community {side} already has the maximum of "
                    f"{self.settings.max_active_alliances} alliances"
                )

    # --- Loading ----------------------------------------------------------------------

    def _community(self, community_id: int) -> Community:
        community = self.session.get(Community, community_id, populate_existing=True)
        if community is None:
            raise NotFound(f"Community {community_id} not found")
        return community

    def _load(self, proposal_id: int, *, for_update: bool = False) -> Proposal:
        proposal = self.session.get(
            Proposal, proposal_id, with_for_update=for_update, populate_existing=True
        )
        if proposal is None:
            raise NotFound(f"Proposal {proposal_id} not found")
        return proposal
