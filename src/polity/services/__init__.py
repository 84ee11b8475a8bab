"""Service layer for the governance engine.

All services use protocol-based dependency inversion:

- Services depend on Protocol interfaces (IMembershipService, IEffectApplier, etc.)
- Use factory.py for production dependency wiring
- Inject protocol-based fakes for testing (avoid complex mocking)

Architecture:
    - MembershipService: Communities, rosters, rank assignment, sovereignty hand-over
    - ProposalService: Law proposals, votes, resolution and effect application
    - UprisingService: Rebellions, supporters, exile, negotiation, cooldowns
    - CommunityEffectApplier: Default effects of passed laws
    - CivilWarService: Default battle collaborator
    - PermissiveMoraleGate: Default morale precondition

Production Usage:
    from polity.factory import create_uprising_service
    uprisings = create_uprising_service(session)
    rebellion = uprisings.start_uprising(community_id, user_id)
"""

from polity.services.civil_war_service import CivilWarService
from polity.services.effect_service import CommunityEffectApplier
from polity.services.locks import DEFAULT_LOCKS, AggregateLocks
from polity.services.membership_service import MembershipService
from polity.services.morale_gate import PermissiveMoraleGate
from polity.services.proposal_service import ProposalService, ProposalSummary
from polity.services.uprising_service import UprisingService

__all__ = [
    "DEFAULT_LOCKS",
    "AggregateLocks",
    "CivilWarService",
    "CommunityEffectApplier",
    "MembershipService",
    "PermissiveMoraleGate",
    "ProposalService",
    "ProposalSummary",
    "UprisingService",
]
