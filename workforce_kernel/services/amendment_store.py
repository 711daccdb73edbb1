"""
AmendmentStore -- async data-access boundary for projects and PO amendments.

Responsibility:
    Defines the ``AmendmentStore`` protocol the recalculation core depends
    on, and ``SqlAmendmentStore``, its SQLAlchemy implementation.

Architecture position:
    Kernel > Services -- imperative shell.  Everything above this module
    works on frozen DTOs from ``workforce_kernel.domain.types``; ORM rows
    never leave a method.

Invariants enforced:
    - ``is_active`` has exactly one write path: ``set_active_amendment``.
      ``add_amendment`` always stores ``is_active = false`` and
      ``update_amendment`` rejects ``is_active`` with ActiveFlagWriteError.
    - ``set_active_amendment`` is atomic per owner: one transaction that
      clears every other flagged row and then sets the chosen one.
    - Each call runs in its own session scope (commit on success, rollback
      on error) inside a worker thread, so the event loop never blocks.
    - A call whose awaiting coroutine is cancelled (e.g. by a caller's
      timeout) is marked abandoned; the worker rolls back instead of
      committing.  Only a commit already under way when the flag is set
      can still land.

Failure modes:
    - SQLAlchemyError -> StorageUnavailableError(operation, reason).
    - Abandoned call -> StorageRequestAbandonedError, raised in the worker
      thread only; the cancelled caller never sees it.
    - Unknown ids -> OwnerNotFoundError / AmendmentNotFoundError.
    - Bad field names or values on update -> InvalidAmendmentDataError.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import date
from typing import Any, Callable, Mapping, Protocol, TypeVar, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from workforce_kernel.db.engine import session_scope
from workforce_kernel.domain.types import (
    EmployeeProject,
    OwnerKind,
    OwnerRef,
    PoAmendment,
    Project,
    ProjectStatus,
)
from workforce_kernel.exceptions import (
    ActiveFlagWriteError,
    AmendmentNotFoundError,
    InvalidAmendmentDataError,
    OwnerNotFoundError,
    StorageRequestAbandonedError,
    StorageUnavailableError,
)
from workforce_kernel.logging_config import get_logger
from workforce_kernel.models.po_amendment import PoAmendmentModel, owner_key_for
from workforce_kernel.models.project import EmployeeProjectModel, ProjectModel

logger = get_logger("services.amendment_store")

T = TypeVar("T")

EDITABLE_FIELDS = frozenset({"po_number", "start_date", "end_date"})


@runtime_checkable
class AmendmentStore(Protocol):
    """Async storage interface consumed by recalculation and the amendment service.

    Contract:
        - Reads return immutable tuples of DTOs.
        - ``list_amendments`` orders by ``start_date`` then id.
        - ``set_active_amendment(owner, None)`` clears every flag for owner.
    """

    async def list_active_projects(self) -> tuple[Project, ...]: ...

    async def get_project(self, project_id: UUID) -> Project: ...

    async def list_assignments(self, project_id: UUID) -> tuple[EmployeeProject, ...]: ...

    async def list_amendments(self, owner: OwnerRef) -> tuple[PoAmendment, ...]: ...

    async def get_amendment(self, amendment_id: UUID) -> PoAmendment: ...

    async def add_amendment(
        self,
        owner: OwnerRef,
        po_number: str,
        start_date: date,
        end_date: date | None = None,
    ) -> PoAmendment: ...

    async def update_amendment(
        self, amendment_id: UUID, changes: Mapping[str, Any],
    ) -> PoAmendment: ...

    async def delete_amendment(self, amendment_id: UUID) -> PoAmendment: ...

    async def set_active_amendment(
        self, owner: OwnerRef, amendment_id: UUID | None,
    ) -> None: ...


class SqlAmendmentStore:
    """SQLAlchemy-backed ``AmendmentStore``.

    Contract:
        Constructed with a session factory; opens a fresh session per call.

    Non-goals:
        - No request timeouts of its own -- callers bound each await (see
          PoRecalculationService).
        - No locking against concurrent manual edits.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    async def _call(self, operation: str, fn: Callable[[Session], T]) -> T:
        abandoned = threading.Event()
        try:
            return await asyncio.to_thread(self._run, operation, fn, abandoned)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; it rolls back instead
            # of committing once it sees the flag.
            abandoned.set()
            raise

    def _run(
        self,
        operation: str,
        fn: Callable[[Session], T],
        abandoned: threading.Event | None = None,
    ) -> T:
        try:
            with session_scope(self._session_factory) as session:
                if abandoned is not None and abandoned.is_set():
                    raise StorageRequestAbandonedError(operation)
                result = fn(session)
                if abandoned is not None and abandoned.is_set():
                    raise StorageRequestAbandonedError(operation)
                return result
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(operation, str(exc)) from exc

    # -------------------------------------------------------------------------
    # Owners
    # -------------------------------------------------------------------------

    async def list_active_projects(self) -> tuple[Project, ...]:
        def _query(session: Session) -> tuple[Project, ...]:
            rows = session.execute(
                select(ProjectModel)
                .where(ProjectModel.status == ProjectStatus.ACTIVE.value)
                .order_by(ProjectModel.name, ProjectModel.id)
            ).scalars().all()
            return tuple(r.to_dto() for r in rows)

        return await self._call("list_active_projects", _query)

    async def get_project(self, project_id: UUID) -> Project:
        def _query(session: Session) -> Project:
            row = session.get(ProjectModel, project_id)
            if row is None:
                raise OwnerNotFoundError(OwnerKind.PROJECT.value, str(project_id))
            return row.to_dto()

        return await self._call("get_project", _query)

    async def list_assignments(self, project_id: UUID) -> tuple[EmployeeProject, ...]:
        def _query(session: Session) -> tuple[EmployeeProject, ...]:
            rows = session.execute(
                select(EmployeeProjectModel)
                .where(EmployeeProjectModel.project_id == project_id)
                .order_by(EmployeeProjectModel.start_date, EmployeeProjectModel.id)
            ).scalars().all()
            return tuple(r.to_dto() for r in rows)

        return await self._call("list_assignments", _query)

    # -------------------------------------------------------------------------
    # Amendments (read)
    # -------------------------------------------------------------------------

    async def list_amendments(self, owner: OwnerRef) -> tuple[PoAmendment, ...]:
        def _query(session: Session) -> tuple[PoAmendment, ...]:
            rows = session.execute(
                select(PoAmendmentModel)
                .where(PoAmendmentModel.owner_key == owner_key_for(owner))
                .order_by(PoAmendmentModel.start_date, PoAmendmentModel.id)
            ).scalars().all()
            return tuple(r.to_dto() for r in rows)

        return await self._call("list_amendments", _query)

    async def get_amendment(self, amendment_id: UUID) -> PoAmendment:
        def _query(session: Session) -> PoAmendment:
            return self._load_amendment(session, amendment_id).to_dto()

        return await self._call("get_amendment", _query)

    # -------------------------------------------------------------------------
    # Amendments (user-facing writes)
    # -------------------------------------------------------------------------

    async def add_amendment(
        self,
        owner: OwnerRef,
        po_number: str,
        start_date: date,
        end_date: date | None = None,
    ) -> PoAmendment:
        def _insert(session: Session) -> PoAmendment:
            project_id = self._resolve_project_id(session, owner)
            model = PoAmendmentModel(
                id=uuid4(),
                project_id=project_id,
                assignment_id=(
                    owner.owner_id if owner.kind == OwnerKind.ASSIGNMENT else None
                ),
                owner_key=owner_key_for(owner),
                po_number=po_number,
                start_date=start_date,
                end_date=end_date,
                is_active=False,
            )
            session.add(model)
            session.flush()
            session.refresh(model)
            return model.to_dto()

        return await self._call("add_amendment", _insert)

    async def update_amendment(
        self, amendment_id: UUID, changes: Mapping[str, Any],
    ) -> PoAmendment:
        if "is_active" in changes:
            raise ActiveFlagWriteError(str(amendment_id))
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidAmendmentDataError(
                f"fields not editable: {sorted(unknown)}", str(amendment_id),
            )

        def _update(session: Session) -> PoAmendment:
            model = self._load_amendment(session, amendment_id)
            for name, value in changes.items():
                setattr(model, name, value)
            session.flush()
            session.refresh(model)
            return model.to_dto()

        return await self._call("update_amendment", _update)

    async def delete_amendment(self, amendment_id: UUID) -> PoAmendment:
        def _delete(session: Session) -> PoAmendment:
            model = self._load_amendment(session, amendment_id)
            snapshot = model.to_dto()
            session.delete(model)
            return snapshot

        return await self._call("delete_amendment", _delete)

    # -------------------------------------------------------------------------
    # Active flag (recalculation only)
    # -------------------------------------------------------------------------

    async def set_active_amendment(
        self, owner: OwnerRef, amendment_id: UUID | None,
    ) -> None:
        key = owner_key_for(owner)

        def _write(session: Session) -> None:
            if amendment_id is not None:
                target = session.get(PoAmendmentModel, amendment_id)
                if target is None or target.owner_key != key:
                    raise AmendmentNotFoundError(str(amendment_id))

            clear = (
                update(PoAmendmentModel)
                .where(
                    PoAmendmentModel.owner_key == key,
                    PoAmendmentModel.is_active == True,  # noqa: E712
                )
                .values(is_active=False)
            )
            if amendment_id is not None:
                clear = clear.where(PoAmendmentModel.id != amendment_id)
            session.execute(clear, execution_options={"synchronize_session": False})

            if amendment_id is not None:
                session.execute(
                    update(PoAmendmentModel)
                    .where(PoAmendmentModel.id == amendment_id)
                    .values(is_active=True),
                    execution_options={"synchronize_session": False},
                )

        await self._call("set_active_amendment", _write)
        logger.debug(
            "po_active_flag_written",
            extra={"owner": key, "amendment_id": str(amendment_id) if amendment_id else None},
        )

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _load_amendment(session: Session, amendment_id: UUID) -> PoAmendmentModel:
        model = session.get(PoAmendmentModel, amendment_id)
        if model is None:
            raise AmendmentNotFoundError(str(amendment_id))
        return model

    @staticmethod
    def _resolve_project_id(session: Session, owner: OwnerRef) -> UUID:
        if owner.kind == OwnerKind.PROJECT:
            if session.get(ProjectModel, owner.owner_id) is None:
                raise OwnerNotFoundError(owner.kind.value, str(owner.owner_id))
            return owner.owner_id

        assignment = session.get(EmployeeProjectModel, owner.owner_id)
        if assignment is None:
            raise OwnerNotFoundError(owner.kind.value, str(owner.owner_id))
        return assignment.project_id
