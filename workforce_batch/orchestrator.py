"""
PoOrchestrator -- DI container for PO amendment services and scheduling.

Contract:
    Wires SqlAmendmentStore, PoRecalculationService, PoAmendmentService,
    PoRecalculationRunner and PoScheduler from one SchedulerSettings and
    one Clock.  Single place where those dependencies are composed.

Architecture: workforce_batch (top-level).  Canonical entry point for the
    command-line runner and for host applications embedding the scheduler.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - Settings are validated before anything is built.
    - No kernel imports of workforce_batch (orchestrator lives here).
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from workforce_kernel.config import SchedulerSettings
from workforce_kernel.domain.clock import Clock, SystemClock
from workforce_kernel.logging_config import get_logger
from workforce_kernel.services.amendment_store import AmendmentStore, SqlAmendmentStore
from workforce_kernel.services.po_amendment_service import PoAmendmentService
from workforce_kernel.services.recalculation_service import PoRecalculationService

from workforce_batch.services.runner import PoRecalculationRunner
from workforce_batch.services.scheduler import PoScheduler

logger = get_logger("batch.orchestrator")


class PoOrchestrator:
    """DI container for PO recalculation.

    Contract:
        - ``from_session_factory()`` builds a SQL-backed orchestrator.
        - ``create_runner()`` returns a runner for one-shot batch runs.
        - ``create_scheduler()`` returns a PoScheduler for background use.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
        - Does NOT own the engine; callers create and dispose it.
    """

    def __init__(
        self,
        store: AmendmentStore,
        settings: SchedulerSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings or SchedulerSettings()
        self._settings.validate()
        self._store = store
        self._clock = clock or SystemClock()
        self._recalculation = PoRecalculationService(
            store=store,
            clock=self._clock,
            tz=self._settings.tzinfo,
            request_timeout_seconds=self._settings.request_timeout_seconds,
        )
        self._amendments = PoAmendmentService(self._recalculation)

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session_factory(
        cls,
        session_factory: sessionmaker[Session],
        settings: SchedulerSettings | None = None,
        clock: Clock | None = None,
    ) -> PoOrchestrator:
        """Create an orchestrator backed by ``SqlAmendmentStore``.

        Args:
            session_factory: Session factory bound to the application engine.
            settings: Optional settings; defaults apply when None.
            clock: Optional clock for deterministic testing.
        """
        orchestrator = cls(
            store=SqlAmendmentStore(session_factory),
            settings=settings,
            clock=clock,
        )
        logger.debug(
            "po_orchestrator_created",
            extra={
                "timezone": orchestrator.settings.timezone,
                "max_concurrency": orchestrator.settings.max_concurrency,
            },
        )
        return orchestrator

    # -------------------------------------------------------------------------
    # Runner / scheduler
    # -------------------------------------------------------------------------

    def create_runner(self) -> PoRecalculationRunner:
        return PoRecalculationRunner(
            recalculation_service=self._recalculation,
            clock=self._clock,
            max_concurrency=self._settings.max_concurrency,
        )

    def create_scheduler(self, runner: PoRecalculationRunner | None = None) -> PoScheduler:
        """Create a PoScheduler wired with the orchestrator's settings.

        Args:
            runner: Optional runner override. If None, a new runner is built.
        """
        return PoScheduler(
            runner=runner or self.create_runner(),
            clock=self._clock,
            tz=self._settings.tzinfo,
            interval_hours=self._settings.interval_hours,
            run_on_login=self._settings.run_on_login,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> SchedulerSettings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def store(self) -> AmendmentStore:
        return self._store

    @property
    def recalculation_service(self) -> PoRecalculationService:
        return self._recalculation

    @property
    def amendment_service(self) -> PoAmendmentService:
        return self._amendments
