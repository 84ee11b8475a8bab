"""Integration tests for database functionality.

Tests schema creation, migrations, SQLite configuration and the constraints
that back the engine's single-sovereign and single-uprising rules.
"""

import os
import subprocess
import sys
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select, text
from sqlalchemy.exc import IntegrityError

from polity.database import check_database_health, get_table_names
from polity.models import Base, Community, Member, Proposal, ProposalVote, Rebellion

EXPECTED_TABLES = {
    "alliances",
    "civil_wars",
    "communities",
    "community_members",
    "currency_issuances",
    "proposal_votes",
    "proposals",
    "rebellion_negotiations",
    "rebellion_supports",
    "rebellions",
    "uprising_cooldowns",
    "war_declarations",
}


@pytest.fixture(scope="module")
def project_root():
    """Get the project root directory."""
    return Path(__file__).parent.parent.parent


@pytest.fixture
def community(session):
    community = Community(name="Avalon", governance_type="monarchy", members_count=0)
    session.add(community)
    session.commit()
    return community


def _member(community, user_id, rank):
    return Member(
        community_id=community.id,
        user_id=user_id,
        rank_tier=rank,
        joined_at=datetime(2026, 1, 1, tzinfo=UTC),
    )


def _rebellion(community, leader_id, status="agitation"):
    return Rebellion(
        community_id=community.id,
        leader_id=leader_id,
        target_id=1,
        status=status,
        current_supports=1,
        required_supports=2,
        agitation_expires_at=datetime(2026, 1, 1, 13, tzinfo=UTC),
        created_at=datetime(2026, 1, 1, 12, tzinfo=UTC),
    )


class TestSchema:
    """Tests for schema creation."""

    def test_all_tables_created(self, engine):
        assert set(get_table_names(engine)) == EXPECTED_TABLES
        assert set(Base.metadata.tables) == EXPECTED_TABLES

    def test_database_health_check(self, engine):
        assert check_database_health(engine) is True

    def test_health_check_reports_unreachable_database(self, tmp_path):
        broken = create_engine(f"sqlite:///{tmp_path / 'missing' / 'nowhere.db'}")
        try:
            assert check_database_health(broken) is False
        finally:
            broken.dispose()


class TestSQLiteConfiguration:
    """Tests for SQLite connection pragmas."""

    def test_wal_mode_enabled(self, session):
        assert session.execute(text("PRAGMA journal_mode")).scalar() == "wal"

    def test_foreign_keys_enabled(self, session):
        assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_synchronous_mode(self, session):
        # NORMAL
        assert session.execute(text("PRAGMA synchronous")).scalar() == 1

    def test_busy_timeout(self, session):
        assert session.execute(text("PRAGMA busy_timeout")).scalar() == 5000


class TestConstraints:
    """Tests for the indexes and constraints guarding governance invariants."""

    def test_one_sovereign_per_community(self, session, community):
        session.add(_member(community, 1, 0))
        session.commit()

        session.add(_member(community, 2, 0))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

        # Any number of secretaries and members are allowed by the schema
        session.add_all([_member(community, 3, 1), _member(community, 4, 10)])
        session.commit()

    def test_one_membership_per_user(self, session, community):
        session.add(_member(community, 5, 10))
        session.commit()
        session.add(_member(community, 5, 1))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_one_active_rebellion_per_community(self, session, community):
        session.add(_rebellion(community, 2, status="resolved"))
        session.add(_rebellion(community, 3, status="battle"))
        session.commit()

        session.add(_rebellion(community, 4))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_vote_choice_checked(self, session, community):
        proposal = Proposal(
            community_id=community.id,
            law_type="WORK_TAX",
            proposer_id=1,
            metadata_json={"tax_rate": 0.1},
            status="pending",
            expires_at=datetime(2026, 1, 2, tzinfo=UTC),
        )
        session.add(proposal)
        session.commit()

        session.add(
            ProposalVote(
                proposal_id=proposal.id,
                user_id=1,
                voter_community_id=community.id,
                choice="maybe",
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_foreign_keys_enforced(self, session):
        session.add(
            Member(community_id=999, user_id=1, rank_tier=10, joined_at=datetime.now(UTC))
        )
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()


class TestTimestamps:
    """Tests for UTC round-tripping of timestamp columns."""

    def test_aware_datetimes_round_trip_as_utc(self, session_factory, community):
        joined = datetime(2026, 3, 1, 16, 30, tzinfo=timezone(timedelta(hours=2)))
        with session_factory() as writer:
            member = _member(community, 7, 10)
            member.joined_at = joined
            writer.add(member)
            writer.commit()

        with session_factory() as reader:
            stored = reader.scalars(select(Member).where(Member.user_id == 7)).one()
            assert stored.joined_at.tzinfo is UTC
            assert stored.joined_at == datetime(2026, 3, 1, 14, 30, tzinfo=UTC)


@pytest.mark.slow
class TestMigrations:
    """Tests for the Alembic migration."""

    def test_upgrade_matches_models(self, project_root, tmp_path):
        db_path = tmp_path / "migrated.db"
        env = dict(os.environ, POLITY_DATABASE_URL=f"sqlite:///{db_path}")
        result = subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=False,
            cwd=project_root,
            env=env,
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0, result.stderr

        engine = create_engine(f"sqlite:///{db_path}")
        try:
            assert set(get_table_names(engine)) == EXPECTED_TABLES | {"alembic_version"}
            with engine.connect() as conn:
                sql = conn.execute(
                    text(
                        "SELECT sql FROM sqlite_master "
                        "WHERE type = 'index' AND name = 'uq_rebellions_active_community'"
                    )
                ).scalar()
            assert "WHERE" in sql
        finally:
            engine.dispose()
