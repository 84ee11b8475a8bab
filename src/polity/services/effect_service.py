"""Default law effects: write passed laws onto community records.

Each effect runs in its own session so it can be bounded by a timeout
without holding the caller's transaction open.  An effect either commits
completely or raises; nothing is half-applied.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from polity.config import Settings, get_settings
from polity.domain.enums import LawType, ProposalStatus, RankTier
from polity.domain.errors import EffectApplicationError
from polity.domain.ranks import normalize_governance_type, rank_of, seat_limit
from polity.interfaces import LawEffect
from polity.models import (
    Alliance,
    Community,
    CurrencyIssuance,
    Member,
    Proposal,
    WarDeclaration,
    utc_now,
)

logger = logging.getLogger(__name__)

EffectHandler = Callable[[Session, Community, LawEffect], None]


class CommunityEffectApplier:
    """Applies passed laws to ``Community`` rows and the alliance/war/currency ledgers."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.clock = clock
        self._handlers: dict[LawType, EffectHandler] = {
            LawType.DECLARE_WAR: self._declare_war,
            LawType.PROPOSE_HEIR: self._propose_heir,
            LawType.CHANGE_GOVERNANCE: self._change_governance,
            LawType.MESSAGE_OF_THE_DAY: self._announce,
            LawType.WORK_TAX: self._work_tax,
            LawType.IMPORT_TARIFF: self._import_tariff,
            LawType.CFC_ALLIANCE: self._form_alliance,
            LawType.ISSUE_CURRENCY: self._issue_currency,
        }

    def apply(self, effect: LawEffect) -> None:
        try:
            handler = self._handlers[LawType(effect.law_type)]
        except (KeyError, ValueError) as exc:
            raise EffectApplicationError(f"No effect defined for {effect.law_type}") from exc

        with self.session_factory() as session:
            proposal = session.get(Proposal, effect.proposal_id)
            if proposal is None:
                raise EffectApplicationError(f"Proposal {effect.proposal_id} does not exist")
            if proposal.status != ProposalStatus.PASSED:
                raise EffectApplicationError(
                    f"Proposal {effect.proposal_id} is {proposal.status}, not passed"
                )
            community = session.get(Community, effect.community_id)
            if community is None:
                raise EffectApplicationError(f"Community {effect.community_id} no longer exists")
            handler(session, community, effect)
            session.flush()
            self._claim(session, effect)
            session.commit()
        logger.info(
            "Applied %s to community %s (proposal %s)",
            effect.law_type,
            effect.community_id,
            effect.proposal_id,
        )

    def _claim(self, session: Session, effect: LawEffect) -> None:
        """Stamp the proposal as applied in the effect's own transaction.

        A proposal that was failed while the handler ran (a timeout, or the
        stale-effect sweep) keeps ``effect_applied_at`` empty and the handler's
        writes are rolled back.
        """

        claimed = session.execute(
            update(Proposal)
            .where(
                Proposal.id == effect.proposal_id,
                Proposal.status == ProposalStatus.PASSED,
                Proposal.effect_applied_at.is_(None),
            )
            .values(effect_applied_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            session.rollback()
            logger.warning(
                "Discarded effect of proposal %s: no longer awaiting application",
                effect.proposal_id,
            )
            raise EffectApplicationError(
                f"Proposal {effect.proposal_id} is no longer awaiting its effect"
            )

    # --- Handlers ---------------------------------------------------------------------

    def _target(self, session: Session, effect: LawEffect) -> Community:
        target_id = effect.target_community_id or effect.metadata.get("target_community_id")
        target = session.get(Community, target_id) if target_id is not None else None
        if target is None:
            raise EffectApplicationError("Target community no longer exists")
        return target

    def _declare_war(self, session: Session, community: Community, effect: LawEffect) -> None:
        target = self._target(session, effect)
        if alliance_between(session, community.id, target.id) is not None:
            raise EffectApplicationError("Cannot declare war on an allied community")
        session.add(
            WarDeclaration(
                attacker_community_id=community.id,
                defender_community_id=target.id,
                proposal_id=effect.proposal_id,
                created_at=self.clock(),
            )
        )

    def _propose_heir(self, session: Session, community: Community, effect: LawEffect) -> None:
        heir_id = int(effect.metadata["target_user_id"])
        is_member = session.scalar(
            select(Member.id).where(Member.community_id == community.id, Member.user_id == heir_id)
        )
        if is_member is None:
            raise EffectApplicationError("The heir must be a member of the community")
        community.heir_id = heir_id

    def _change_governance(
        self, session: Session, community: Community, effect: LawEffect
    ) -> None:
        governance = normalize_governance_type(effect.metadata["new_governance_type"])
        community.governance_type = str(governance)

        # Secretaries beyond the new seat limit are demoted, latest joiners first
        limit = seat_limit(governance, RankTier.SECRETARY)
        secretaries = [
            m
            for m in session.scalars(
                select(Member)
                .where(Member.community_id == community.id)
                .order_by(Member.joined_at, Member.id)
            )
            if rank_of(m) == RankTier.SECRETARY
        ]
        if limit is not None:
            for member in secretaries[limit:]:
                member.rank_tier = int(RankTier.MEMBER)
                member.role = None

    def _announce(self, session: Session, community: Community, effect: LawEffect) -> None:
        community.announcement_title = effect.metadata["title"]
        community.announcement_content = effect.metadata["content"]
        community.announcement_updated_at = self.clock()

    def _work_tax(self, session: Session, community: Community, effect: LawEffect) -> None:
        community.work_tax_rate = float(effect.metadata["tax_rate"])

    def _import_tariff(self, session: Session, community: Community, effect: LawEffect) -> None:
        community.import_tariff_rate = float(effect.metadata["tariff_rate"])

    def _form_alliance(self, session: Session, community: Community, effect: LawEffect) -> None:
        target = self._target(session, effect)
        if alliance_between(session, community.id, target.id) is not None:
            raise EffectApplicationError("These communities are already allied")
        for side in (community.id, target.id):
            if count_active_alliances(session, side) >= self.settings.max_active_alliances:
                raise EffectApplicationError(
                    f"Community {side} already has the maximum of "
                    f"{self.settings.max_active_alliances} alliances"
                )
        low, high = sorted((community.id, target.id))
        session.add(
            Alliance(
                community_a_id=low,
                community_b_id=high,
                proposal_id=effect.proposal_id,
                created_at=self.clock(),
            )
        )

    def _issue_currency(self, session: Session, community: Community, effect: LawEffect) -> None:
        gold = float(effect.metadata["gold_amount"])
        rate = float(effect.metadata["conversion_rate"])
        session.add(
            CurrencyIssuance(
                community_id=community.id,
                proposal_id=effect.proposal_id,
                gold_burned=gold,
                conversion_rate=rate,
                currency_minted=gold * rate,
                created_at=self.clock(),
            )
        )


def alliance_between(session: Session, first: int, second: int) -> int | None:
    low, high = sorted((first, second))
    return session.scalar(
        select(Alliance.id).where(
            Alliance.community_a_id == low,
            Alliance.community_b_id == high,
            Alliance.is_active.is_(True),
        )
    )


def count_active_alliances(session: Session, community_id: int) -> int:
    return session.scalar(
        select(func.count(Alliance.id)).where(
            Alliance.is_active.is_(True),
            (Alliance.community_a_id == community_id) | (Alliance.community_b_id == community_id),
        )
    ) or 0
