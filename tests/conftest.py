"""Pytest configuration shared by the unit and integration suites.

This adds the `src/` directory to `sys.path` so tests can import the
`polity` package without requiring an editable install in CI, and provides
a throwaway SQLite database per test.
"""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parents[1] / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from polity.config import Settings  # noqa: E402
from polity.database import create_db_engine, create_session_factory, init_db  # noqa: E402
from polity.services.locks import AggregateLocks  # noqa: E402

EPOCH = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock injected wherever services read the time."""

    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'polity.db'}",
        sweep_enabled=False,
        effect_timeout_seconds=5.0,
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def locks():
    return AggregateLocks()
