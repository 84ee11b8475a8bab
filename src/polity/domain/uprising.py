"""Pure uprising rules: support thresholds and outcome inference."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Protocol

from .enums import BattleOutcome, NegotiationStatus, RebellionOutcome, RebellionStatus

DEFAULT_SUPPORT_RATIO = 0.2


class RebellionView(Protocol):
    status: str
    current_supports: int
    required_supports: int
    battle_started_at: datetime | None
    battle_outcome: str | None


def required_supports(non_sovereign_members: int, ratio: float = DEFAULT_SUPPORT_RATIO) -> int:
    """Supporters needed to move from agitation to battle.

    >>> required_supports(10)
    2
    >>> required_supports(1)
    1
    """

    return max(1, math.ceil(max(0, non_sovereign_members) * ratio))


def threshold_reached(current: int, required: int) -> bool:
    return current >= required


def infer_outcome(
    rebellion: RebellionView, negotiation_statuses: list[str] | tuple[str, ...] = ()
) -> RebellionOutcome | None:
    """Classify a rebellion from its counters and recorded verdicts.

    Active rebellions have no outcome yet.  A resolved rebellion that never
    reached battle either ended in an accepted negotiation or fizzled out
    short of its threshold.
    """

    if rebellion.status != RebellionStatus.RESOLVED:
        return None
    if rebellion.battle_outcome == BattleOutcome.WON:
        return RebellionOutcome.OVERTHROWN
    if rebellion.battle_outcome == BattleOutcome.LOST:
        return RebellionOutcome.SUPPRESSED
    if NegotiationStatus.ACCEPTED in negotiation_statuses:
        return RebellionOutcome.NEGOTIATED
    return RebellionOutcome.FIZZLED
