"""Runtime primitives backing the governance HTTP API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from polity.config import Settings, get_settings
from polity.database import create_db_engine, create_session_factory, init_db
from polity.factory import ServiceBundle, create_all_services
from polity.models import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    """Changes made by one sweep cycle."""

    proposals: int = 0
    rebellions: int = 0


class SweepManager:
    """Periodically resolves overdue proposals and uprisings in the background.

    Lazy resolution on read already covers correctness; the sweep keeps
    effects and cooldowns timely for communities nobody is looking at.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._clock = clock
        self._interval_seconds = settings.sweep_interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._sweep_lock = asyncio.Lock()

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run_loop(), name="polity-sweep-loop")

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        self._stop_event.set()
        await task
        self._task = None

    async def sweep_now(self) -> SweepReport:
        async with self._sweep_lock:
            return await asyncio.to_thread(self._sweep_sync)

    async def _run_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                    break
                except TimeoutError:
                    pass
                try:
                    await self.sweep_now()
                except Exception:
                    logger.exception("background sweep failed")
        finally:
            self._task = None

    def _sweep_sync(self) -> SweepReport:
        with self._session_factory() as session:
            services = create_all_services(
                session, self._session_factory, settings=self._settings, clock=self._clock
            )
            now = self._clock()
            return SweepReport(
                proposals=services.proposals.sweep_expired(now),
                rebellions=services.uprisings.sweep_expired(now),
            )


class ApiState:
    """Engine, session factory and background sweep shared by the FastAPI layer."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        engine: Engine | None = None,
        clock: Callable[[], datetime] = utc_now,
        create_schema: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or create_db_engine(self.settings)
        self.session_factory = create_session_factory(self.engine)
        self.clock = clock
        if create_schema:
            init_db(self.engine)
        self.sweeps = SweepManager(self.session_factory, settings=self.settings, clock=clock)

    def services(self, session: Session) -> ServiceBundle:
        return create_all_services(
            session, self.session_factory, settings=self.settings, clock=self.clock
        )

    async def startup(self) -> None:
        if self.settings.sweep_enabled:
            self.sweeps.start()

    async def shutdown(self) -> None:
        await self.sweeps.stop()
        self.engine.dispose()


def build_state() -> ApiState:
    """Factory used by the API to initialize state."""

    return ApiState()
