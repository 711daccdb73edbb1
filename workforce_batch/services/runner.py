"""
PoRecalculationRunner -- recalculate every owner of every active project.

Contract:
    ``recalculate_all_active_pos(today=None)`` lists active projects and,
    for each, recalculates the project owner and then each assignment
    owner through PoRecalculationService.  Returns a SchedulerRunResult;
    never raises for data or storage problems.

Architecture: workforce_batch/services.  Depends only on
    workforce_kernel services and the pure batch domain types.

Invariants enforced:
    - Per-owner isolation: one owner's failure is counted and logged; the
      remaining owners are still processed.
    - A failed project query yields zero processed owners and no exception.
    - At most ``max_concurrency`` owners are recalculated at once; the
      default of 1 processes owners strictly in project order.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import asyncio
import time
from datetime import date
from uuid import uuid4

from workforce_kernel.domain.clock import Clock, SystemClock
from workforce_kernel.domain.types import OwnerRef, Project, RecalcResult, RecalcStatus
from workforce_kernel.logging_config import LogContext, get_logger
from workforce_kernel.services.recalculation_service import PoRecalculationService

from workforce_batch.domain.types import SchedulerRunResult, TriggerKind

logger = get_logger("batch.runner")


def _error_code(exc: BaseException) -> str:
    return getattr(exc, "code", None) or "UNHANDLED_EXCEPTION"


class PoRecalculationRunner:
    """Runs one recalculation pass over all active projects.

    Non-goals:
        - Does NOT decide when to run -- see PoScheduler.
        - Does NOT retry failed owners; the next run picks them up.
    """

    def __init__(
        self,
        recalculation_service: PoRecalculationService,
        clock: Clock | None = None,
        max_concurrency: int = 1,
        include_assignments: bool = True,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1: {max_concurrency}")
        self._service = recalculation_service
        self._clock = clock or SystemClock()
        self._max_concurrency = max_concurrency
        self._include_assignments = include_assignments

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    async def recalculate_all_active_pos(
        self,
        today: date | None = None,
        trigger: TriggerKind = TriggerKind.MANUAL,
    ) -> SchedulerRunResult:
        run_id = uuid4()
        as_of = today or self._service.today()
        started_at = self._clock.now()
        start = time.monotonic()

        with LogContext.bind(run_id=str(run_id), trigger=trigger.value):
            logger.info("po_recalc_run_started", extra={"as_of": as_of})

            try:
                projects = await self._service.bounded(
                    "list_active_projects",
                    self._service.store.list_active_projects(),
                )
            except Exception as exc:
                logger.error(
                    "po_recalc_project_query_failed",
                    extra={"error_code": _error_code(exc), "error": str(exc)},
                    exc_info=True,
                )
                return SchedulerRunResult(
                    run_id=run_id,
                    trigger=trigger,
                    as_of=as_of,
                    project_query_failed=True,
                    started_at=started_at,
                    completed_at=self._clock.now(),
                    duration_ms=int((time.monotonic() - start) * 1000),
                )

            if not projects:
                logger.info("po_recalc_no_active_projects")

            semaphore = asyncio.Semaphore(self._max_concurrency)
            if self._max_concurrency == 1:
                per_project = [
                    await self._process_project(p, as_of, semaphore) for p in projects
                ]
            else:
                per_project = await asyncio.gather(
                    *(self._process_project(p, as_of, semaphore) for p in projects)
                )
            owner_results = tuple(r for batch in per_project for r in batch)

            processed = sum(1 for r in owner_results if r.success)
            errors = len(owner_results) - processed
            result = SchedulerRunResult(
                run_id=run_id,
                trigger=trigger,
                as_of=as_of,
                processed=processed,
                errors=errors,
                owner_results=owner_results,
                started_at=started_at,
                completed_at=self._clock.now(),
                duration_ms=int((time.monotonic() - start) * 1000),
            )

            logger.info(
                "po_recalc_run_completed",
                extra={
                    "as_of": as_of,
                    "project_count": len(projects),
                    "processed": result.processed,
                    "errors": result.errors,
                    "updated": result.updated,
                    "duration_ms": result.duration_ms,
                },
            )
            return result

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _process_project(
        self,
        project: Project,
        as_of: date,
        semaphore: asyncio.Semaphore,
    ) -> list[RecalcResult]:
        results = [await self._recalculate_owner(project.owner, as_of, semaphore)]
        if not self._include_assignments:
            return results

        try:
            async with semaphore:
                assignments = await self._service.bounded(
                    "list_assignments",
                    self._service.store.list_assignments(project.project_id),
                )
        except Exception as exc:
            logger.error(
                "po_recalc_assignment_query_failed",
                extra={"owner": str(project.owner), "error_code": _error_code(exc)},
                exc_info=True,
            )
            results.append(self._failed(project.owner, as_of, exc))
            return results

        for assignment in assignments:
            results.append(
                await self._recalculate_owner(assignment.owner, as_of, semaphore)
            )
        return results

    async def _recalculate_owner(
        self,
        owner: OwnerRef,
        as_of: date,
        semaphore: asyncio.Semaphore,
    ) -> RecalcResult:
        async with semaphore:
            try:
                return await self._service.recalculate_active_amendment(owner, as_of)
            except Exception as exc:
                logger.error(
                    "po_recalc_owner_failed",
                    extra={
                        "owner": str(owner),
                        "owner_label": owner.label,
                        "error_code": _error_code(exc),
                        "error": str(exc),
                    },
                    exc_info=True,
                )
                return self._failed(owner, as_of, exc)

    @staticmethod
    def _failed(owner: OwnerRef, as_of: date, exc: Exception) -> RecalcResult:
        return RecalcResult(
            owner=owner,
            status=RecalcStatus.FAILED,
            as_of=as_of,
            error_code=_error_code(exc),
            error_message=str(exc),
        )
