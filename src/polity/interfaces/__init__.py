"""Protocol-based interfaces for the governance engine's collaborators.

This module exports all collaborator protocols, providing a clear contract
for implementations and enabling dependency injection and testing.
"""

from polity.interfaces.battle import IBattleOutcomeService
from polity.interfaces.effects import IEffectApplier, LawEffect
from polity.interfaces.membership import IMembershipService
from polity.interfaces.morale import Eligibility, IMoraleGate

__all__ = [
    "Eligibility",
    "IBattleOutcomeService",
    "IEffectApplier",
    "IMembershipService",
    "IMoraleGate",
    "LawEffect",
]
