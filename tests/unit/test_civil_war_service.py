"""Unit tests for CivilWarService wired into the uprising engine."""

from __future__ import annotations

import pytest

from polity.domain.enums import BattleOutcome, CivilWarStatus, RebellionOutcome
from polity.domain.errors import Conflict, InvalidProposal, NotFound, PermissionDenied
from polity.services.civil_war_service import CivilWarService
from polity.services.membership_service import MembershipService
from polity.services.morale_gate import PermissiveMoraleGate
from polity.services.uprising_service import UprisingService


@pytest.fixture
def membership(session, locks, clock):
    return MembershipService(session, locks=locks, clock=clock)


@pytest.fixture
def civil_wars(session, settings, clock):
    return CivilWarService(session, settings, clock)


@pytest.fixture
def uprisings(session, membership, civil_wars, settings, locks, clock):
    return UprisingService(
        session,
        membership,
        civil_wars,
        PermissiveMoraleGate(),
        settings=settings,
        locks=locks,
        clock=clock,
    )


@pytest.fixture
def rebellion(membership, uprisings):
    community = membership.create_community("Hamlet", founder_id=1)
    membership.join(community.id, 2)
    # One non-sovereign member: the leader alone reaches the threshold
    return uprisings.start_uprising(community.id, 2)


def test_battle_opens_a_civil_war(civil_wars, rebellion, clock, settings):
    war = civil_wars.for_rebellion(rebellion.id)

    assert war.status == CivilWarStatus.ACTIVE
    assert war.community_id == rebellion.community_id
    assert war.started_at == clock.now
    assert war.ends_at == clock.now + settings.civil_war_duration
    assert civil_wars.outcome_for(rebellion) is None


def test_start_battle_is_idempotent(session, civil_wars, rebellion):
    civil_wars.start_battle(rebellion)
    session.commit()
    assert civil_wars.for_rebellion(rebellion.id) is not None


def test_revolutionary_win(civil_wars, uprisings, membership, rebellion, clock):
    clock.advance(minutes=30)
    war = civil_wars.record_result(rebellion.id, "won")

    assert war.status == CivilWarStatus.REVOLUTIONARY_WIN
    assert war.ended_at == clock.now
    assert civil_wars.outcome_for(rebellion) == BattleOutcome.WON

    resolved = uprisings.resolve_battle(rebellion.id)
    assert uprisings.outcome(resolved) == RebellionOutcome.OVERTHROWN
    assert membership.sovereign_of(rebellion.community_id) == 2


def test_government_win(civil_wars, uprisings, rebellion):
    civil_wars.record_result(rebellion.id, "lost")

    resolved = uprisings.resolve_battle(rebellion.id)
    assert uprisings.outcome(resolved) == RebellionOutcome.SUPPRESSED
    assert uprisings.active_cooldown(rebellion.community_id) is not None


def test_result_recorded_once(civil_wars, rebellion):
    civil_wars.record_result(rebellion.id, "won")
    with pytest.raises(Conflict, match="already been decided"):
        civil_wars.record_result(rebellion.id, "lost")


def test_invalid_outcome(civil_wars, rebellion):
    with pytest.raises(InvalidProposal, match="Invalid battle outcome"):
        civil_wars.record_result(rebellion.id, "draw")


def test_no_war_for_agitating_rebellion(civil_wars, membership, uprisings):
    community = membership.create_community("Avalon", founder_id=10)
    for user_id in range(11, 21):
        membership.join(community.id, user_id)
    agitating = uprisings.start_uprising(community.id, 11)

    with pytest.raises(NotFound):
        civil_wars.record_result(agitating.id, "won")


def test_only_referees_report_results(session, settings, clock, rebellion):
    civil_wars = CivilWarService(
        session, settings.model_copy(update={"battle_referee_ids": [99]}), clock
    )

    with pytest.raises(PermissionDenied, match="battle referee"):
        civil_wars.record_result(rebellion.id, "won", referee_id=2)
    assert civil_wars.for_rebellion(rebellion.id).status == CivilWarStatus.ACTIVE

    war = civil_wars.record_result(rebellion.id, "won", referee_id=99)
    assert war.status == CivilWarStatus.REVOLUTIONARY_WIN
