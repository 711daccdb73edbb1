"""
Tests for workforce_kernel.services.recalculation_service.

Covers the read-decide-write cycle for one owner against SQLite and the
in-memory store: worked example, rollover, idempotence, no-qualifying
outcome, malformed-row exclusion, request timeouts and storage failures.
"""

import asyncio
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from workforce_kernel.domain.clock import DeterministicClock
from workforce_kernel.domain.types import OwnerRef, RecalcStatus
from workforce_kernel.exceptions import StorageTimeoutError, StorageUnavailableError
from workforce_kernel.logging_config import LogContext
from workforce_kernel.services.recalculation_service import PoRecalculationService

from tests.support.fakes import InMemoryAmendmentStore, SlowSqlAmendmentStore

TODAY = date(2024, 8, 15)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def fake_store():
    return InMemoryAmendmentStore()


@pytest.fixture
def fake_project(fake_store):
    return fake_store.seed_project()


# =============================================================================
# Against SQLite
# =============================================================================


class TestRecalculateWithSqlStore:

    def test_worked_example(self, store, clock, make_project):
        owner = OwnerRef.project(make_project())
        january = run(store.add_amendment(owner, "PO-100", date(2024, 1, 1), date(2024, 6, 30)))
        july = run(store.add_amendment(owner, "PO-100-A1", date(2024, 7, 1)))
        service = PoRecalculationService(store, clock=clock)

        result = run(service.recalculate_active_amendment(owner))

        assert result.status == RecalcStatus.UPDATED
        assert result.active_amendment_id == july.amendment_id
        assert result.as_of == TODAY
        flags = {a.amendment_id: a.is_active for a in run(store.list_amendments(owner))}
        assert flags == {january.amendment_id: False, july.amendment_id: True}

    def test_second_run_is_unchanged(self, store, clock, make_project):
        owner = OwnerRef.project(make_project())
        run(store.add_amendment(owner, "PO-1", date(2024, 7, 1)))
        service = PoRecalculationService(store, clock=clock)

        first = run(service.recalculate_active_amendment(owner))
        second = run(service.recalculate_active_amendment(owner))

        assert first.status == RecalcStatus.UPDATED
        assert second.status == RecalcStatus.UNCHANGED
        assert second.changed_count == 0
        assert second.active_amendment_id == first.active_amendment_id

    def test_rollover_on_next_day(self, store, make_project):
        owner = OwnerRef.project(make_project())
        first = run(store.add_amendment(owner, "PO-1", date(2024, 1, 1), date(2024, 8, 15)))
        second = run(store.add_amendment(owner, "PO-2", date(2024, 8, 16)))
        clock = DeterministicClock(datetime(2024, 8, 15, 23, 0))
        service = PoRecalculationService(store, clock=clock)

        assert run(service.recalculate_active_amendment(owner)).active_amendment_id == first.amendment_id
        clock.advance(3600)
        result = run(service.recalculate_active_amendment(owner))

        assert result.active_amendment_id == second.amendment_id
        assert result.changed_count == 2

    def test_explicit_today_overrides_clock(self, store, clock, make_project):
        owner = OwnerRef.project(make_project())
        old = run(store.add_amendment(owner, "PO-OLD", date(2023, 1, 1), date(2023, 12, 31)))
        service = PoRecalculationService(store, clock=clock)

        result = run(service.recalculate_active_amendment(owner, date(2023, 6, 1)))

        assert result.as_of == date(2023, 6, 1)
        assert result.active_amendment_id == old.amendment_id

    def test_no_amendments_is_success(self, store, clock, make_project):
        owner = OwnerRef.project(make_project())
        service = PoRecalculationService(store, clock=clock)

        result = run(service.recalculate_active_amendment(owner))

        assert result.success
        assert result.status == RecalcStatus.UNCHANGED
        assert result.active_amendment_id is None

    def test_all_expired_clears_flag(self, store, clock, make_project):
        owner = OwnerRef.project(make_project())
        expired = run(store.add_amendment(owner, "PO-1", date(2024, 1, 1), date(2024, 8, 14)))
        service = PoRecalculationService(store, clock=clock)
        run(service.recalculate_active_amendment(owner, date(2024, 8, 1)))
        assert run(store.get_amendment(expired.amendment_id)).is_active

        result = run(service.recalculate_active_amendment(owner))

        assert result.status == RecalcStatus.UPDATED
        assert result.active_amendment_id is None
        assert not run(store.get_amendment(expired.amendment_id)).is_active

    def test_assignment_owner_independent_of_project(
        self, store, clock, make_project, make_assignment,
    ):
        project_id = make_project()
        project_owner = OwnerRef.project(project_id)
        assignment_owner = OwnerRef.assignment(make_assignment(project_id))
        run(store.add_amendment(project_owner, "PO-P", date(2024, 1, 1)))
        assignment_po = run(store.add_amendment(assignment_owner, "PO-A", date(2024, 8, 1)))
        service = PoRecalculationService(store, clock=clock)

        result = run(service.recalculate_active_amendment(assignment_owner))

        assert result.active_amendment_id == assignment_po.amendment_id
        assert all(not a.is_active for a in run(store.list_amendments(project_owner)))

    def test_timed_out_write_is_rolled_back(self, session_factory, clock, make_project):
        slow = SlowSqlAmendmentStore(session_factory, {"set_active_amendment": 0.3})
        owner = OwnerRef.project(make_project())
        amendment = run(slow.add_amendment(owner, "PO-1", date(2024, 7, 1)))
        service = PoRecalculationService(slow, clock=clock, request_timeout_seconds=0.05)

        with pytest.raises(StorageTimeoutError):
            run(service.recalculate_active_amendment(owner))

        assert not run(slow.get_amendment(amendment.amendment_id)).is_active

        retry = run(PoRecalculationService(slow, clock=clock).recalculate_active_amendment(owner))
        assert retry.status == RecalcStatus.UPDATED
        assert run(slow.get_amendment(amendment.amendment_id)).is_active


# =============================================================================
# Against the in-memory store
# =============================================================================


class TestRecalculateWithFakeStore:

    def test_unchanged_does_not_write(self, fake_store, fake_project, clock):
        owner = fake_project.owner
        fake_store.seed_amendment(owner, "PO-1", date(2024, 7, 1), is_active=True)
        service = PoRecalculationService(fake_store, clock=clock)

        result = run(service.recalculate_active_amendment(owner))

        assert result.status == RecalcStatus.UNCHANGED
        assert fake_store.flag_writes == []

    def test_malformed_amendment_excluded_and_logged(
        self, fake_store, fake_project, clock, captured_logs,
    ):
        owner = fake_project.owner
        broken = fake_store.seed_amendment(owner, "", date(2024, 8, 1))
        good = fake_store.seed_amendment(owner, "PO-1", date(2024, 1, 1))
        service = PoRecalculationService(fake_store, clock=clock)

        result = run(service.recalculate_active_amendment(owner))

        assert result.active_amendment_id == good.amendment_id
        assert [e.amendment_id for e in result.excluded] == [broken.amendment_id]
        warnings = [r for r in captured_logs() if r["message"] == "po_amendment_excluded"]
        assert warnings[0]["amendment_id"] == str(broken.amendment_id)
        assert warnings[0]["owner_id"] == str(owner)

    def test_slow_read_times_out(self, fake_store, fake_project, clock):
        fake_store.delay_seconds["list_amendments"] = 5
        service = PoRecalculationService(fake_store, clock=clock, request_timeout_seconds=0.05)

        with pytest.raises(StorageTimeoutError) as exc_info:
            run(service.recalculate_active_amendment(fake_project.owner))
        assert exc_info.value.operation == "list_amendments"

    def test_slow_write_times_out(self, fake_store, fake_project, clock):
        fake_store.seed_amendment(fake_project.owner, "PO-1", date(2024, 1, 1))
        fake_store.delay_seconds["set_active_amendment"] = 5
        service = PoRecalculationService(fake_store, clock=clock, request_timeout_seconds=0.05)

        with pytest.raises(StorageTimeoutError) as exc_info:
            run(service.recalculate_active_amendment(fake_project.owner))
        assert exc_info.value.operation == "set_active_amendment"

    def test_storage_failure_propagates(self, fake_store, fake_project, clock):
        fake_store.failing_owners.add(fake_project.owner)
        service = PoRecalculationService(fake_store, clock=clock)

        with pytest.raises(StorageUnavailableError):
            run(service.recalculate_active_amendment(fake_project.owner))

    def test_today_uses_canonical_timezone(self, fake_store):
        clock = DeterministicClock(datetime(2024, 8, 15, 23, 30, tzinfo=ZoneInfo("UTC")))
        service = PoRecalculationService(
            fake_store, clock=clock, tz=ZoneInfo("Australia/Sydney"),
        )
        assert service.today() == date(2024, 8, 16)

    def test_owner_context_restored_after_call(self, fake_store, fake_project, clock):
        service = PoRecalculationService(fake_store, clock=clock)
        run(service.recalculate_active_amendment(fake_project.owner))

        assert "owner_id" not in LogContext.get_all()
