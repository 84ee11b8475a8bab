"""Battle Outcome Protocol Interface.

This module defines the protocol for the system that fights out a rebellion
once it reaches battle.  The uprising engine only needs to open a battle and
later learn whether the rebels won or lost.
"""

from typing import Protocol

from polity.domain.enums import BattleOutcome
from polity.models import Rebellion


class IBattleOutcomeService(Protocol):
    """Protocol defining the contract between the uprising engine and battles."""

    def start_battle(self, rebellion: Rebellion) -> None:
        """Open the battle for a rebellion that just reached its threshold.

        Args:
            rebellion: Rebellion in the ``battle`` phase
        """
        ...

    def outcome_for(self, rebellion: Rebellion) -> BattleOutcome | None:
        """Report the battle result from the rebels' point of view.

        Args:
            rebellion: Rebellion in the ``battle`` phase

        Returns:
            ``won`` or ``lost``, or None while the battle is undecided
        """
        ...
