"""Civil war bookkeeping for rebellions that reach battle.

The engine does not simulate fighting.  A civil war is opened when a
rebellion reaches its support threshold, and its result is recorded by
whatever decides it (a referee, or the wider battle system) through
:meth:`CivilWarService.record_result`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from polity.config import Settings, get_settings
from polity.domain.enums import BattleOutcome, CivilWarStatus
from polity.domain.errors import Conflict, InvalidProposal, NotFound, PermissionDenied
from polity.models import CivilWar, Rebellion, utc_now

logger = logging.getLogger(__name__)

_STATUS_FOR_OUTCOME = {
    BattleOutcome.WON: CivilWarStatus.REVOLUTIONARY_WIN,
    BattleOutcome.LOST: CivilWarStatus.GOVERNMENT_WIN,
}
_OUTCOME_FOR_STATUS = {status: outcome for outcome, status in _STATUS_FOR_OUTCOME.items()}


class CivilWarService:
    """Default battle collaborator backed by the ``civil_wars`` table."""

    def __init__(
        self,
        session: Session,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock

    def start_battle(self, rebellion: Rebellion) -> None:
        if self.for_rebellion(rebellion.id) is not None:
            return
        now = self.clock()
        self.session.add(
            CivilWar(
                rebellion_id=rebellion.id,
                community_id=rebellion.community_id,
                status=str(CivilWarStatus.ACTIVE),
                started_at=now,
                ends_at=now + self.settings.civil_war_duration,
                created_at=now,
            )
        )
        self.session.flush()
        logger.info("Civil war opened for rebellion %s", rebellion.id)

    def outcome_for(self, rebellion: Rebellion) -> BattleOutcome | None:
        war = self.for_rebellion(rebellion.id)
        if war is None:
            return None
        return _OUTCOME_FOR_STATUS.get(CivilWarStatus(war.status))

    def for_rebellion(self, rebellion_id: int) -> CivilWar | None:
        return self.session.scalar(
            select(CivilWar)
            .where(CivilWar.rebellion_id == rebellion_id)
            .execution_options(populate_existing=True)
        )

    def record_result(
        self, rebellion_id: int, outcome: str, referee_id: int | None = None
    ) -> CivilWar:
        """Record who won; the uprising engine picks it up on its next resolution.

        Args:
            rebellion_id: Rebellion whose civil war ended
            outcome: ``won`` or ``lost``, from the rebels' side
            referee_id: User reporting the result over HTTP; must be one of the
                configured battle referees. In-process battle systems pass None.
        """

        if referee_id is not None and referee_id not in self.settings.battle_referee_ids:
            raise PermissionDenied("Only a battle referee can record civil war results")
        try:
            verdict = BattleOutcome(outcome)
        except ValueError as exc:
            raise InvalidProposal(f"Invalid battle outcome: {outcome}") from exc
        war = self.for_rebellion(rebellion_id)
        if war is None:
            raise NotFound(f"No civil war for rebellion {rebellion_id}")
        if war.status != CivilWarStatus.ACTIVE:
            raise Conflict("This civil war has already been decided")
        war.status = str(_STATUS_FOR_OUTCOME[verdict])
        war.ended_at = self.clock()
        self.session.commit()
        logger.info("Civil war for rebellion %s ended: %s", rebellion_id, war.status)
        return war
