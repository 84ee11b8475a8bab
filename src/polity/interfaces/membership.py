"""Membership Directory Protocol Interface.

This module defines the protocol the proposal and uprising engines use to
read ranks and rosters.  Ranks are always queried, never cached, so the two
engines see each other's sovereignty changes immediately.
"""

from typing import Protocol

from polity.domain.enums import VoteAccess


class IMembershipService(Protocol):
    """Protocol defining roster lookups and the sovereignty hand-over."""

    def rank_in(self, community_id: int, user_id: int) -> int | None:
        """Canonical rank of a user, or None when they are not a member."""
        ...

    def sovereign_of(self, community_id: int) -> int | None:
        """User id currently holding rank 0, if any."""
        ...

    def count_members(self, community_id: int, *, exclude_sovereign: bool = False) -> int:
        """Number of members, optionally leaving out the sovereign."""
        ...

    def count_eligible(self, community_id: int, vote_access: VoteAccess) -> int:
        """Number of members admitted to vote under ``vote_access``."""
        ...

    def transfer_sovereignty(self, community_id: int, new_sovereign_id: int) -> int | None:
        """Make ``new_sovereign_id`` rank 0 and demote the previous holder.

        Returns:
            The previous sovereign's user id, if there was one
        """
        ...
