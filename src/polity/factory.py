"""Service Factory for the governance engine.

This module provides factory functions for creating service instances with
proper dependency wiring. Use these functions in production code to ensure
all collaborators are correctly initialized.

For testing, inject protocol-based fakes instead of using these factories.

Example:
    # Production usage
    from polity.factory import create_proposal_service
    proposals = create_proposal_service(session)

    # Testing usage
    from polity.services.proposal_service import ProposalService

    class FakeEffects:
        def __init__(self):
            self.applied = []

        def apply(self, effect):
            self.applied.append(effect)

    proposals = ProposalService(session, MembershipService(session), FakeEffects())
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from polity.config import Settings, get_settings
from polity.database import create_session_factory
from polity.models import utc_now
from polity.services.civil_war_service import CivilWarService
from polity.services.effect_service import CommunityEffectApplier
from polity.services.membership_service import MembershipService
from polity.services.morale_gate import PermissiveMoraleGate
from polity.services.proposal_service import ProposalService
from polity.services.uprising_service import UprisingService

Clock = Callable[[], datetime]


@dataclass(slots=True)
class ServiceBundle:
    """Every service bound to one session."""

    membership: MembershipService
    proposals: ProposalService
    uprisings: UprisingService
    civil_wars: CivilWarService


def create_membership_service(
    session: Session, *, settings: Settings | None = None, clock: Clock = utc_now
) -> MembershipService:
    """Create a MembershipService.

    Args:
        session: Database session
        settings: Application settings
        clock: Source of the current time

    Returns:
        Fully initialized MembershipService
    """
    settings = settings or get_settings()
    return MembershipService(
        session, default_governance_type=settings.default_governance_type, clock=clock
    )


def create_effect_applier(
    session_factory: sessionmaker[Session],
    *,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> CommunityEffectApplier:
    """Create the default law effect applier.

    Args:
        session_factory: Factory for the applier's own sessions
        settings: Application settings
        clock: Source of the current time

    Returns:
        CommunityEffectApplier writing to community records
    """
    return CommunityEffectApplier(session_factory, settings or get_settings(), clock)


def create_proposal_service(
    session: Session,
    session_factory: sessionmaker[Session] | None = None,
    *,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> ProposalService:
    """Create a ProposalService with all dependencies.

    Args:
        session: Database session
        session_factory: Factory used by the effect applier; defaults to one
            bound to the same engine as ``session``
        settings: Application settings
        clock: Source of the current time

    Returns:
        Fully initialized ProposalService with MembershipService and
        CommunityEffectApplier dependencies
    """
    settings = settings or get_settings()
    session_factory = session_factory or create_session_factory(session.get_bind())
    return ProposalService(
        session,
        create_membership_service(session, settings=settings, clock=clock),
        create_effect_applier(session_factory, settings=settings, clock=clock),
        settings=settings,
        clock=clock,
    )


def create_civil_war_service(
    session: Session, *, settings: Settings | None = None, clock: Clock = utc_now
) -> CivilWarService:
    """Create the default battle collaborator.

    Args:
        session: Database session
        settings: Application settings
        clock: Source of the current time

    Returns:
        CivilWarService backed by the civil_wars table
    """
    return CivilWarService(session, settings or get_settings(), clock)


def create_uprising_service(
    session: Session, *, settings: Settings | None = None, clock: Clock = utc_now
) -> UprisingService:
    """Create an UprisingService with all dependencies.

    Args:
        session: Database session
        settings: Application settings
        clock: Source of the current time

    Returns:
        Fully initialized UprisingService with MembershipService,
        CivilWarService and PermissiveMoraleGate dependencies
    """
    settings = settings or get_settings()
    return UprisingService(
        session,
        create_membership_service(session, settings=settings, clock=clock),
        create_civil_war_service(session, settings=settings, clock=clock),
        PermissiveMoraleGate(),
        settings=settings,
        clock=clock,
    )


def create_all_services(
    session: Session,
    session_factory: sessionmaker[Session] | None = None,
    *,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> ServiceBundle:
    """Create all services with proper dependency wiring.

    Args:
        session: Database session
        session_factory: Factory used by the effect applier
        settings: Application settings
        clock: Source of the current time

    Returns:
        ServiceBundle whose services share ``session``
    """
    settings = settings or get_settings()
    membership = create_membership_service(session, settings=settings, clock=clock)
    civil_wars = create_civil_war_service(session, settings=settings, clock=clock)
    session_factory = session_factory or create_session_factory(session.get_bind())
    return ServiceBundle(
        membership=membership,
        proposals=ProposalService(
            session,
            membership,
            create_effect_applier(session_factory, settings=settings, clock=clock),
            settings=settings,
            clock=clock,
        ),
        uprisings=UprisingService(
            session,
            membership,
            civil_wars,
            PermissiveMoraleGate(),
            settings=settings,
            clock=clock,
        ),
        civil_wars=civil_wars,
    )
