"""Error taxonomy for governance and uprising operations.

Every rejection carries a user-facing ``reason``; the HTTP layer maps each
class onto a status code and never swallows them.
"""

from __future__ import annotations


class GovernanceError(Exception):
    """Base class for rejections surfaced to the caller."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PermissionDenied(GovernanceError):
    """The actor's rank or membership does not allow the action."""


class InvalidProposal(GovernanceError):
    """Malformed input: bad metadata, unknown target, out-of-range values."""


class LawNotAvailable(InvalidProposal):
    """The law type has no rule for the community's governance type."""


class InvalidGovernanceType(InvalidProposal):
    """The governance type is not one the engine knows about."""


class NotFound(GovernanceError):
    """A referenced community, proposal, rebellion or negotiation is missing."""


class Conflict(GovernanceError):
    """The action clashes with current state (duplicate vote, active uprising...)."""


class EffectApplicationError(GovernanceError):
    """An effect collaborator could not apply a passed law."""
