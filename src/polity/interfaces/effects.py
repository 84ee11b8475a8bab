"""Law Effect Protocol Interface.

This module defines the protocol for collaborators that apply the effect of a
passed law (changing a tax rate, recording an alliance, ...).
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class LawEffect:
    """Everything an applier needs to know about a passed law."""

    proposal_id: int
    community_id: int
    law_type: str
    proposer_id: int
    metadata: dict[str, Any] = field(default_factory=dict)
    target_community_id: int | None = None


class IEffectApplier(Protocol):
    """Protocol for applying passed laws.

    Implementations are called at most once per proposal and signal failure
    by raising; the proposal engine marks the proposal ``failed`` and never
    retries.
    """

    def apply(self, effect: LawEffect) -> None:
        """Apply the effect of a passed law.

        Args:
            effect: The passed law and its validated metadata

        Raises:
            Exception: Any error means the effect was not applied
        """
        ...
