"""
Tests for workforce_kernel.services.amendment_store.SqlAmendmentStore.

Exercises the async store against in-memory SQLite: owner enumeration,
owner-scoped amendment reads, user-facing writes that never touch
``is_active``, the atomic clear-then-set flag write and rollback of a
write whose caller stopped waiting.
"""

import asyncio
from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from workforce_kernel.domain.types import OwnerRef, ProjectStatus
from workforce_kernel.exceptions import (
    ActiveFlagWriteError,
    AmendmentNotFoundError,
    InvalidAmendmentDataError,
    OwnerNotFoundError,
    StorageUnavailableError,
)
from workforce_kernel.services.amendment_store import AmendmentStore, SqlAmendmentStore

from tests.support.fakes import SlowSqlAmendmentStore


def run(coro):
    return asyncio.run(coro)


class TestProtocol:

    def test_sql_store_satisfies_protocol(self, store):
        assert isinstance(store, AmendmentStore)


class TestOwners:

    def test_only_active_projects_listed(self, store, make_project):
        active = make_project("Beta")
        make_project("Gamma", status=ProjectStatus.COMPLETED)
        make_project("Delta", status=ProjectStatus.ON_HOLD)
        also_active = make_project("Alpha")

        projects = run(store.list_active_projects())

        assert [p.project_id for p in projects] == [also_active, active]

    def test_get_project(self, store, make_project):
        project_id = make_project("Apollo")
        assert run(store.get_project(project_id)).name == "Apollo"

    def test_get_unknown_project(self, store):
        with pytest.raises(OwnerNotFoundError):
            run(store.get_project(uuid4()))

    def test_list_assignments(self, store, make_project, make_assignment):
        project_id = make_project()
        other_id = make_project("Other")
        first = make_assignment(project_id)
        second = make_assignment(project_id)
        make_assignment(other_id)

        assignments = run(store.list_assignments(project_id))

        assert {a.assignment_id for a in assignments} == {first, second}
        assert all(a.owner.kind.value == "assignment" for a in assignments)


class TestAmendmentWrites:

    def test_add_is_never_active(self, store, make_project):
        owner = OwnerRef.project(make_project())

        created = run(store.add_amendment(owner, "PO-1", date(2024, 1, 1)))

        assert created.is_active is False
        assert created.owner == owner
        assert created.end_date is None

    def test_add_for_assignment_records_project(self, store, make_project, make_assignment):
        project_id = make_project()
        owner = OwnerRef.assignment(make_assignment(project_id))

        created = run(store.add_amendment(owner, "PO-A", date(2024, 1, 1), date(2024, 6, 30)))

        assert created.project_id == project_id
        assert created.assignment_id == owner.owner_id
        assert created.owner == owner

    def test_add_for_unknown_owner(self, store):
        with pytest.raises(OwnerNotFoundError):
            run(store.add_amendment(OwnerRef.project(uuid4()), "PO-1", date(2024, 1, 1)))
        with pytest.raises(OwnerNotFoundError):
            run(store.add_amendment(OwnerRef.assignment(uuid4()), "PO-1", date(2024, 1, 1)))

    def test_list_is_owner_scoped_and_ordered(self, store, make_project, make_assignment):
        project_id = make_project()
        project_owner = OwnerRef.project(project_id)
        assignment_owner = OwnerRef.assignment(make_assignment(project_id))
        later = run(store.add_amendment(project_owner, "PO-2", date(2024, 7, 1)))
        earlier = run(store.add_amendment(project_owner, "PO-1", date(2024, 1, 1)))
        run(store.add_amendment(assignment_owner, "PO-A", date(2024, 1, 1)))

        listed = run(store.list_amendments(project_owner))

        assert [a.amendment_id for a in listed] == [earlier.amendment_id, later.amendment_id]

    def test_update_changes_fields(self, store, make_project):
        owner = OwnerRef.project(make_project())
        created = run(store.add_amendment(owner, "PO-1", date(2024, 1, 1)))

        updated = run(store.update_amendment(
            created.amendment_id, {"po_number": "PO-1B", "end_date": date(2024, 3, 31)},
        ))

        assert updated.po_number == "PO-1B"
        assert updated.end_date == date(2024, 3, 31)

    def test_update_rejects_is_active(self, store, make_project):
        owner = OwnerRef.project(make_project())
        created = run(store.add_amendment(owner, "PO-1", date(2024, 1, 1)))

        with pytest.raises(ActiveFlagWriteError):
            run(store.update_amendment(created.amendment_id, {"is_active": True}))
        assert run(store.get_amendment(created.amendment_id)).is_active is False

    def test_update_rejects_unknown_field(self, store, make_project):
        owner = OwnerRef.project(make_project())
        created = run(store.add_amendment(owner, "PO-1", date(2024, 1, 1)))

        with pytest.raises(InvalidAmendmentDataError):
            run(store.update_amendment(created.amendment_id, {"project_id": uuid4()}))

    def test_update_unknown_amendment(self, store):
        with pytest.raises(AmendmentNotFoundError):
            run(store.update_amendment(uuid4(), {"po_number": "X"}))

    def test_delete_returns_snapshot(self, store, make_project):
        owner = OwnerRef.project(make_project())
        created = run(store.add_amendment(owner, "PO-1", date(2024, 1, 1)))

        deleted = run(store.delete_amendment(created.amendment_id))

        assert deleted.amendment_id == created.amendment_id
        assert run(store.list_amendments(owner)) == ()
        with pytest.raises(AmendmentNotFoundError):
            run(store.get_amendment(created.amendment_id))


class TestSetActiveAmendment:

    def _seed(self, store, owner, count=3):
        return [
            run(store.add_amendment(owner, f"PO-{i}", date(2024, 1 + i, 1)))
            for i in range(count)
        ]

    def _active_ids(self, store, owner):
        return [a.amendment_id for a in run(store.list_amendments(owner)) if a.is_active]

    def test_sets_exactly_one(self, store, make_project):
        owner = OwnerRef.project(make_project())
        rows = self._seed(store, owner)

        run(store.set_active_amendment(owner, rows[1].amendment_id))

        assert self._active_ids(store, owner) == [rows[1].amendment_id]

    def test_switching_clears_previous(self, store, make_project):
        owner = OwnerRef.project(make_project())
        rows = self._seed(store, owner)
        run(store.set_active_amendment(owner, rows[0].amendment_id))

        run(store.set_active_amendment(owner, rows[2].amendment_id))

        assert self._active_ids(store, owner) == [rows[2].amendment_id]

    def test_none_clears_all(self, store, make_project):
        owner = OwnerRef.project(make_project())
        rows = self._seed(store, owner)
        run(store.set_active_amendment(owner, rows[0].amendment_id))

        run(store.set_active_amendment(owner, None))

        assert self._active_ids(store, owner) == []

    def test_setting_same_twice_is_stable(self, store, make_project):
        owner = OwnerRef.project(make_project())
        rows = self._seed(store, owner)
        run(store.set_active_amendment(owner, rows[0].amendment_id))
        run(store.set_active_amendment(owner, rows[0].amendment_id))

        assert self._active_ids(store, owner) == [rows[0].amendment_id]

    def test_other_owners_untouched(self, store, make_project, make_assignment):
        project_id = make_project()
        project_owner = OwnerRef.project(project_id)
        assignment_owner = OwnerRef.assignment(make_assignment(project_id))
        project_rows = self._seed(store, project_owner, 1)
        assignment_rows = self._seed(store, assignment_owner, 1)
        run(store.set_active_amendment(assignment_owner, assignment_rows[0].amendment_id))

        run(store.set_active_amendment(project_owner, project_rows[0].amendment_id))
        run(store.set_active_amendment(project_owner, None))

        assert self._active_ids(store, assignment_owner) == [assignment_rows[0].amendment_id]

    def test_foreign_amendment_rejected(self, store, make_project):
        first = OwnerRef.project(make_project("A"))
        second = OwnerRef.project(make_project("B"))
        foreign = self._seed(store, second, 1)[0]

        with pytest.raises(AmendmentNotFoundError):
            run(store.set_active_amendment(first, foreign.amendment_id))
        assert self._active_ids(store, second) == []


class TestStorageFailures:

    def test_sqlalchemy_error_becomes_storage_unavailable(self):
        class BrokenSession:
            def execute(self, *args, **kwargs):
                raise OperationalError("SELECT 1", {}, Exception("connection refused"))

            def commit(self):
                pass

            def rollback(self):
                pass

            def close(self):
                pass

        store = SqlAmendmentStore(BrokenSession)

        with pytest.raises(StorageUnavailableError) as exc_info:
            run(store.list_active_projects())
        assert exc_info.value.operation == "list_active_projects"
        assert exc_info.value.code == "STORAGE_UNAVAILABLE"

    def test_abandoned_flag_write_is_rolled_back(self, session_factory, make_project):
        slow = SlowSqlAmendmentStore(session_factory, {"set_active_amendment": 0.3})
        owner = OwnerRef.project(make_project())
        row = run(slow.add_amendment(owner, "PO-1", date(2024, 1, 1)))

        with pytest.raises(asyncio.TimeoutError):
            run(asyncio.wait_for(
                slow.set_active_amendment(owner, row.amendment_id), timeout=0.05,
            ))

        # asyncio.run joins the worker thread before returning.
        assert not run(slow.get_amendment(row.amendment_id)).is_active

    def test_completed_flag_write_is_kept(self, session_factory, make_project):
        slow = SlowSqlAmendmentStore(session_factory, {"set_active_amendment": 0.05})
        owner = OwnerRef.project(make_project())
        row = run(slow.add_amendment(owner, "PO-1", date(2024, 1, 1)))

        run(asyncio.wait_for(slow.set_active_amendment(owner, row.amendment_id), timeout=5))

        assert run(slow.get_amendment(row.amendment_id)).is_active
