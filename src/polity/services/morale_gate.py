"""Default morale gate."""

from polity.interfaces import Eligibility


class PermissiveMoraleGate:
    """Lets every member start an uprising; swap in a real morale check where one exists."""

    def check(self, community_id: int, user_id: int) -> Eligibility:  # noqa: ARG002
        return Eligibility.ok()
