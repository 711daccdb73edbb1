"""
Tests for workforce_batch.orchestrator.PoOrchestrator.

Validates wiring: shared clock and store, settings flowing into the
recalculation service, runner and scheduler.
"""

import asyncio
from datetime import date
from zoneinfo import ZoneInfo

import pytest

from workforce_kernel.config import SchedulerSettings
from workforce_kernel.domain.types import OwnerRef
from workforce_kernel.exceptions import ConfigurationError
from workforce_kernel.services.amendment_store import SqlAmendmentStore
from workforce_kernel.services.po_amendment_service import PoAmendmentService
from workforce_kernel.services.recalculation_service import PoRecalculationService

from workforce_batch.orchestrator import PoOrchestrator
from workforce_batch.services.runner import PoRecalculationRunner
from workforce_batch.services.scheduler import PoScheduler


@pytest.fixture
def orchestrator(session_factory, clock):
    return PoOrchestrator.from_session_factory(session_factory, clock=clock)


class TestFactory:

    def test_from_session_factory_wires_sql_store(self, orchestrator, clock):
        assert isinstance(orchestrator.store, SqlAmendmentStore)
        assert isinstance(orchestrator.recalculation_service, PoRecalculationService)
        assert isinstance(orchestrator.amendment_service, PoAmendmentService)
        assert orchestrator.recalculation_service.store is orchestrator.store
        assert orchestrator.clock is clock

    def test_default_settings(self, orchestrator):
        assert orchestrator.settings == SchedulerSettings()

    def test_invalid_settings_rejected(self, session_factory):
        with pytest.raises(ConfigurationError):
            PoOrchestrator.from_session_factory(
                session_factory, settings=SchedulerSettings(max_concurrency=0),
            )

    def test_timezone_flows_to_today(self, session_factory, clock):
        orchestrator = PoOrchestrator.from_session_factory(
            session_factory,
            settings=SchedulerSettings(timezone="Asia/Tokyo"),
            clock=clock,
        )
        # Naive clock values are taken as already local to the zone.
        assert orchestrator.recalculation_service.today() == date(2024, 8, 15)


class TestRunnerAndScheduler:

    def test_create_runner(self, session_factory, clock):
        orchestrator = PoOrchestrator.from_session_factory(
            session_factory, settings=SchedulerSettings(max_concurrency=4), clock=clock,
        )
        runner = orchestrator.create_runner()

        assert isinstance(runner, PoRecalculationRunner)
        assert runner.max_concurrency == 4

    def test_create_scheduler(self, orchestrator):
        scheduler = orchestrator.create_scheduler()

        assert isinstance(scheduler, PoScheduler)
        assert not scheduler.is_running

    def test_scheduler_uses_given_runner(self, orchestrator):
        runner = orchestrator.create_runner()
        scheduler = orchestrator.create_scheduler(runner)
        assert scheduler._runner is runner

    def test_scheduler_settings_applied(self, session_factory, clock):
        settings = SchedulerSettings(timezone="Europe/Paris", interval_hours=12, run_on_login=False)
        orchestrator = PoOrchestrator.from_session_factory(session_factory, settings=settings, clock=clock)

        scheduler = orchestrator.create_scheduler()

        assert scheduler._tz == ZoneInfo("Europe/Paris")
        assert scheduler._interval.total_seconds() == 12 * 3600
        assert scheduler._run_on_login is False


class TestEndToEnd:

    def test_edit_then_nightly_style_run(self, orchestrator, make_project):
        owner = OwnerRef.project(make_project())
        service = orchestrator.amendment_service

        async def scenario():
            created = await service.create_po_amendment(owner, "PO-1", date(2024, 1, 1), date(2024, 8, 15))
            upcoming = await service.create_po_amendment(owner, "PO-2", date(2024, 8, 16))
            result = await orchestrator.create_runner().recalculate_all_active_pos(date(2024, 8, 16))
            active = await service.get_active_po_amendment(owner)
            return created, upcoming, result, active

        created, upcoming, result, active = asyncio.run(scenario())

        assert created.is_active is True
        assert upcoming.is_active is False
        assert result.updated == 1
        assert active.amendment_id == upcoming.amendment_id
