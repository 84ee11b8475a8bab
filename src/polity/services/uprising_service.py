"""Uprising state machine.

States::

    agitation --(supports reach threshold)--> battle --(battle decided)--> resolved
    agitation --(accepted negotiation / agitation window elapsed)-----> resolved

At most one non-resolved rebellion exists per community.  Whether a
resolved rebellion was negotiated, overthrew the sovereign, was suppressed or
fizzled is never stored; :meth:`UprisingService.outcome` infers it from the
counters and recorded verdicts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from polity.config import Settings, get_settings
from polity.domain.enums import (
    ACTIVE_REBELLION_STATUSES,
    BattleOutcome,
    CooldownReason,
    NegotiationStatus,
    RebellionOutcome,
    RebellionStatus,
)
from polity.domain.errors import Conflict, GovernanceError, NotFound, PermissionDenied
from polity.domain.ranks import is_sovereign
from polity.domain.uprising import infer_outcome, required_supports, threshold_reached
from polity.interfaces import Eligibility, IBattleOutcomeService, IMembershipService, IMoraleGate
from polity.models import (
    Community,
    Negotiation,
    Rebellion,
    RebellionSupport,
    UprisingCooldown,
    utc_now,
)
from polity.services.locks import COMMUNITY, DEFAULT_LOCKS, REBELLION, AggregateLocks

logger = logging.getLogger(__name__)


class UprisingService:
    """Service implementing uprisings against a community's sovereign."""

    def __init__(
        self,
        session: Session,
        membership: IMembershipService,
        battles: IBattleOutcomeService,
        morale: IMoraleGate,
        *,
        settings: Settings | None = None,
        locks: AggregateLocks = DEFAULT_LOCKS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.membership = membership
        self.battles = battles
        self.morale = morale
        self.settings = settings or get_settings()
        self.locks = locks
        self.clock = clock

    # --- Starting ---------------------------------------------------------------------

    def can_start_uprising(self, community_id: int, initiator_id: int) -> Eligibility:
        """Whether ``initiator_id`` may start an uprising right now, and why not."""

        try:
            self._check_can_start(community_id, initiator_id)
        except GovernanceError as exc:
            return Eligibility.denied(exc.reason)
        return Eligibility.ok()

    def start_uprising(self, community_id: int, leader_id: int) -> Rebellion:
        """Open a rebellion in agitation, or straight in battle if one supporter suffices."""

        with self.locks.hold(COMMUNITY, community_id):
            self._check_can_start(community_id, leader_id)
            sovereign = self.membership.sovereign_of(community_id)
            if sovereign is None:
                raise Conflict("This community has no sovereign to rise against")

            non_sovereign = self.membership.count_members(community_id, exclude_sovereign=True)
            now = self.clock()
            rebellion = Rebellion(
                community_id=community_id,
                leader_id=leader_id,
                target_id=sovereign,
                status=str(RebellionStatus.AGITATION),
                current_supports=1,
                required_supports=required_supports(non_sovereign, self.settings.support_ratio),
                agitation_expires_at=now + self.settings.agitation_window,
                created_at=now,
            )
            self.session.add(rebellion)
            try:
                self.session.flush()
                if threshold_reached(rebellion.current_supports, rebellion.required_supports):
                    self._enter_battle(rebellion, now)
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                raise Conflict("An uprising is already under way in this community") from exc

        logger.info(
            "User %s started an uprising in community %s against user %s (%d/%d)",
            leader_id,
            community_id,
            sovereign,
            rebellion.current_supports,
            rebellion.required_supports,
        )
        return rebellion

    def _check_can_start(self, community_id: int, initiator_id: int) -> None:
        self._community(community_id)
        rank = self.membership.rank_in(community_id, initiator_id)
        if rank is None:
            raise PermissionDenied("You must be a member of this community to start an uprising")
        if is_sovereign(rank):
            raise PermissionDenied("The sovereign cannot rise against themselves")

        active = self._active_rebellion(community_id)
        if active is not None:
            self._expire_if_due(active.id)
            if self._active_rebellion(community_id) is not None:
                raise Conflict("An uprising is already under way in this community")

        cooldown = self.active_cooldown(community_id)
        if cooldown is not None:
            raise Conflict(
                f"Uprisings are on cooldown until {cooldown.expires_at:%Y-%m-%d %H:%M} UTC"
            )

        gate = self.morale.check(community_id, initiator_id)
        if not gate.allowed:
            raise PermissionDenied(gate.reason or "Morale is too low to start an uprising")

    # --- Agitation --------------------------------------------------------------------

    def support(self, rebellion_id: int, user_id: int) -> Rebellion:
        """Back a rebellion; reaching the threshold moves it to battle."""

        self._expire_if_due(rebellion_id)
        with self.locks.hold(REBELLION, rebellion_id):
            rebellion = self._load(rebellion_id, for_update=True)
            if rebellion.status != RebellionStatus.AGITATION:
                raise Conflict("This uprising is no longer gathering support")
            if user_id == rebellion.leader_id:
                raise Conflict("The leader already counts as a supporter")
            rank = self.membership.rank_in(rebellion.community_id, user_id)
            if rank is None:
                raise PermissionDenied("You must be a member of this community to join an uprising")
            if is_sovereign(rank):
                raise PermissionDenied("The sovereign cannot support an uprising against themselves")
            if self._has_supported(rebellion_id, user_id):
                raise Conflict("You already support this uprising")

            now = self.clock()
            self.session.add(
                RebellionSupport(rebellion_id=rebellion_id, user_id=user_id, created_at=now)
            )
            rebellion.current_supports += 1
            try:
                if threshold_reached(rebellion.current_supports, rebellion.required_supports):
                    self._enter_battle(rebellion, now)
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                raise Conflict("You already support this uprising") from exc

        logger.info(
            "User %s supports rebellion %s (%d/%d)",
            user_id,
            rebellion_id,
            rebellion.current_supports,
            rebellion.required_supports,
        )
        return rebellion

    def exile_leader(self, rebellion_id: int, actor_id: int) -> Rebellion:
        """Sovereign exiles the leader; the rebellion itself carries on."""

        self._expire_if_due(rebellion_id)
        with self.locks.hold(REBELLION, rebellion_id):
            rebellion = self._load(rebellion_id, for_update=True)
            self._require_sovereign(rebellion, actor_id, "Only the sovereign can exile the rebel leader")
            if rebellion.status == RebellionStatus.RESOLVED:
                raise Conflict("This uprising has already ended")
            if rebellion.is_leader_exiled:
                raise Conflict("The rebel leader is already in exile")
            rebellion.is_leader_exiled = True
            rebellion.exiled_at = self.clock()
            self.session.commit()
        logger.info("Leader of rebellion %s exiled by user %s", rebellion_id, actor_id)
        return rebellion

    # --- Negotiation ------------------------------------------------------------------

    def request_negotiation(
        self, rebellion_id: int, requested_by: int, terms: dict[str, Any] | None = None
    ) -> Negotiation:
        """Sovereign offers to negotiate while the rebellion is still agitating."""

        self._expire_if_due(rebellion_id)
        with self.locks.hold(REBELLION, rebellion_id):
            rebellion = self._load(rebellion_id, for_update=True)
            self._require_sovereign(rebellion, requested_by, "Only the sovereign can open negotiations")
            if rebellion.status != RebellionStatus.AGITATION:
                raise Conflict("Negotiation is only possible while the uprising gathers support")
            if self.get_pending_negotiation(rebellion_id) is not None:
                raise Conflict("A negotiation is already pending for this uprising")

            negotiation = Negotiation(
                rebellion_id=rebellion_id,
                requested_by=requested_by,
                status=str(NegotiationStatus.PENDING),
                terms=terms,
                created_at=self.clock(),
            )
            self.session.add(negotiation)
            try:
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                raise Conflict("A negotiation is already pending for this uprising") from exc
        logger.info("Negotiation %s requested for rebellion %s", negotiation.id, rebellion_id)
        return negotiation

    def respond_to_negotiation(self, negotiation_id: int, accept: bool, user_id: int) -> Negotiation:
        """Rebel leader answers; accepting ends the uprising and starts a cooldown."""

        negotiation = self.session.get(Negotiation, negotiation_id)
        if negotiation is None:
            raise NotFound(f"Negotiation {negotiation_id} not found")
        rebellion_id = negotiation.rebellion_id
        self._expire_if_due(rebellion_id)

        with self.locks.hold(REBELLION, rebellion_id):
            rebellion = self._load(rebellion_id, for_update=True)
            self.session.refresh(negotiation)
            if negotiation.status != NegotiationStatus.PENDING:
                raise Conflict("This negotiation has already been answered")
            if user_id != rebellion.leader_id:
                raise PermissionDenied("Only the rebel leader can answer this negotiation")
            if rebellion.is_leader_exiled:
                raise PermissionDenied("An exiled leader cannot answer negotiations")
            if rebellion.status != RebellionStatus.AGITATION:
                raise Conflict("This uprising is no longer open to negotiation")

            now = self.clock()
            negotiation.responded_at = now
            if accept:
                negotiation.status = str(NegotiationStatus.ACCEPTED)
                rebellion.status = str(RebellionStatus.RESOLVED)
                rebellion.resolved_at = now
                self._add_cooldown(rebellion, CooldownReason.NEGOTIATION, now)
            else:
                negotiation.status = str(NegotiationStatus.REJECTED)
            self.session.commit()

        logger.info(
            "Negotiation %s for rebellion %s %s", negotiation_id, rebellion_id, negotiation.status
        )
        return negotiation

    # --- Battle -----------------------------------------------------------------------

    def resolve_battle(self, rebellion_id: int) -> Rebellion:
        """Apply the battle verdict if there is one; no-op otherwise."""

        with self.locks.hold(REBELLION, rebellion_id):
            rebellion = self._load(rebellion_id, for_update=True)
            if rebellion.status != RebellionStatus.BATTLE:
                return rebellion
            verdict = self.battles.outcome_for(rebellion)
            if verdict is None:
                return rebellion

            now = self.clock()
            rebellion.battle_outcome = str(verdict)
            rebellion.status = str(RebellionStatus.RESOLVED)
            rebellion.resolved_at = now
            if verdict == BattleOutcome.WON:
                self._crown_leader(rebellion)
            else:
                self._add_cooldown(rebellion, CooldownReason.FAILURE, now)
            self.session.commit()

        logger.info("Rebellion %s battle %s", rebellion_id, verdict)
        return rebellion

    def _enter_battle(self, rebellion: Rebellion, now: datetime) -> None:
        rebellion.status = str(RebellionStatus.BATTLE)
        rebellion.battle_started_at = now
        self._close_negotiation(rebellion, now)
        self.session.flush()
        self.battles.start_battle(rebellion)
        logger.info(
            "Rebellion %s reached %d supporters and goes to battle",
            rebellion.id,
            rebellion.current_supports,
        )

    def _close_negotiation(self, rebellion: Rebellion, now: datetime) -> None:
        """Reject an offer nobody answered before the agitation phase ended."""

        pending = self.get_pending_negotiation(rebellion.id)
        if pending is not None:
            pending.status = str(NegotiationStatus.REJECTED)
            pending.responded_at = now
            logger.info("Negotiation %s lapsed unanswered", pending.id)

    def _crown_leader(self, rebellion: Rebellion) -> None:
        if rebellion.is_leader_exiled:
            # Exile strips the leader of any claim to the throne
            logger.warning(
                "Rebellion %s won but leader %s is in exile; sovereignty unchanged",
                rebellion.id,
                rebellion.leader_id,
            )
            return
        if self.membership.rank_in(rebellion.community_id, rebellion.leader_id) is None:
            logger.warning(
                "Rebellion %s won but leader %s has left community %s; sovereignty unchanged",
                rebellion.id,
                rebellion.leader_id,
                rebellion.community_id,
            )
            return
        self.membership.transfer_sovereignty(rebellion.community_id, rebellion.leader_id)

    # --- Expiry -----------------------------------------------------------------------

    def expire(self, rebellion_id: int) -> Rebellion:
        """Resolve a rebellion whose agitation window has elapsed; no-op otherwise."""

        self._expire_if_due(rebellion_id)
        return self._load(rebellion_id)

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Expire overdue agitations and pick up decided battles.

        Returns:
            Number of rebellions resolved
        """

        now = now or self.clock()
        changed = 0
        overdue = list(
            self.session.scalars(
                select(Rebellion.id).where(
                    Rebellion.status == RebellionStatus.AGITATION,
                    Rebellion.agitation_expires_at <= now,
                )
            )
        )
        for rebellion_id in overdue:
            if self._expire_if_due(rebellion_id, now=now):
                changed += 1
        fighting = list(
            self.session.scalars(
                select(Rebellion.id).where(Rebellion.status == RebellionStatus.BATTLE)
            )
        )
        for rebellion_id in fighting:
            if self.resolve_battle(rebellion_id).status == RebellionStatus.RESOLVED:
                changed += 1
        if changed:
            logger.info("Uprising sweep resolved %d rebellion(s)", changed)
        return changed

    def _expire_if_due(self, rebellion_id: int, *, now: datetime | None = None) -> bool:
        now = now or self.clock()
        with self.locks.hold(REBELLION, rebellion_id):
            rebellion = self._load(rebellion_id)
            if rebellion.status != RebellionStatus.AGITATION or now < rebellion.agitation_expires_at:
                return False
            rebellion.status = str(RebellionStatus.RESOLVED)
            rebellion.resolved_at = now
            self._close_negotiation(rebellion, now)
            self.session.commit()
        logger.info(
            "Rebellion %s fizzled with %d/%d supporters",
            rebellion_id,
            rebellion.current_supports,
            rebellion.required_supports,
        )
        return True

    # --- Queries ----------------------------------------------------------------------

    def get_rebellion(self, rebellion_id: int) -> Rebellion:
        return self.expire(rebellion_id)

    def get_active_rebellion(self, community_id: int) -> Rebellion | None:
        self._community(community_id)
        rebellion = self._active_rebellion(community_id)
        if rebellion is not None and self._expire_if_due(rebellion.id):
            return None
        return rebellion

    def list_history(
        self, community_id: int, *, limit: int = 20, offset: int = 0
    ) -> list[Rebellion]:
        self._community(community_id)
        return list(
            self.session.scalars(
                select(Rebellion)
                .where(Rebellion.community_id == community_id)
                .order_by(Rebellion.created_at.desc(), Rebellion.id.desc())
                .limit(max(1, min(limit, 100)))
                .offset(max(0, offset))
            )
        )

    def list_supporters(self, rebellion_id: int) -> list[RebellionSupport]:
        self._load(rebellion_id)
        return list(
            self.session.scalars(
                select(RebellionSupport)
                .where(RebellionSupport.rebellion_id == rebellion_id)
                .order_by(RebellionSupport.id)
            )
        )

    def get_pending_negotiation(self, rebellion_id: int) -> Negotiation | None:
        return self.session.scalar(
            select(Negotiation).where(
                Negotiation.rebellion_id == rebellion_id,
                Negotiation.status == NegotiationStatus.PENDING,
            )
        )

    def active_cooldown(self, community_id: int) -> UprisingCooldown | None:
        return self.session.scalar(
            select(UprisingCooldown)
            .where(
                UprisingCooldown.community_id == community_id,
                UprisingCooldown.expires_at > self.clock(),
            )
            .order_by(UprisingCooldown.expires_at.desc())
            .limit(1)
        )

    def outcome(self, rebellion: Rebellion) -> RebellionOutcome | None:
        statuses = self.session.scalars(
            select(Negotiation.status).where(Negotiation.rebellion_id == rebellion.id)
        ).all()
        return infer_outcome(rebellion, statuses)

    # --- Helpers ----------------------------------------------------------------------

    def _require_sovereign(self, rebellion: Rebellion, actor_id: int, reason: str) -> None:
        if not is_sovereign(self.membership.rank_in(rebellion.community_id, actor_id)):
            raise PermissionDenied(reason)

    def _has_supported(self, rebellion_id: int, user_id: int) -> bool:
        return (
            self.session.scalar(
                select(RebellionSupport.id).where(
                    RebellionSupport.rebellion_id == rebellion_id,
                    RebellionSupport.user_id == user_id,
                )
            )
            is not None
        )

    def _add_cooldown(self, rebellion: Rebellion, reason: CooldownReason, now: datetime) -> None:
        duration = (
            self.settings.negotiation_cooldown
            if reason == CooldownReason.NEGOTIATION
            else self.settings.failure_cooldown
        )
        self.session.add(
            UprisingCooldown(
                community_id=rebellion.community_id,
                rebellion_id=rebellion.id,
                reason=str(reason),
                created_at=now,
                expires_at=now + duration,
            )
        )

    def _active_rebellion(self, community_id: int) -> Rebellion | None:
        return self.session.scalar(
            select(Rebellion)
            .where(
                Rebellion.community_id == community_id,
                Rebellion.status.in_([str(s) for s in ACTIVE_REBELLION_STATUSES]),
            )
            .execution_options(populate_existing=True)
        )

    def _community(self, community_id: int) -> Community:
        community = self.session.get(Community, community_id)
        if community is None:
            raise NotFound(f"Community {community_id} not found")
        return community

    def _load(self, rebellion_id: int, *, for_update: bool = False) -> Rebellion:
        rebellion = self.session.get(
            Rebellion, rebellion_id, with_for_update=for_update, populate_existing=True
        )
        if rebellion is None:
            raise NotFound(f"Rebellion {rebellion_id} not found")
        return rebellion
