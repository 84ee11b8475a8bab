"""Morale Gate Protocol Interface.

This module defines the protocol for the external check that may forbid a
member from starting an uprising (for example when their morale is too low).
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class Eligibility:
    """Answer to "may this happen?" with a user-facing reason when not."""

    allowed: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> "Eligibility":
        return cls(True)

    @classmethod
    def denied(cls, reason: str) -> "Eligibility":
        return cls(False, reason)


class IMoraleGate(Protocol):
    """Protocol defining the morale precondition for starting an uprising."""

    def check(self, community_id: int, user_id: int) -> Eligibility:
        """Decide whether ``user_id`` may start an uprising in ``community_id``.

        Args:
            community_id: Community the uprising would target
            user_id: Prospective rebel leader

        Returns:
            Eligibility with a reason when denied
        """
        ...
