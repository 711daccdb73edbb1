"""
PoRecalculationService -- reconcile one owner's stored ``is_active`` flags.

Responsibility:
    Read an owner's amendments, let ``domain.activation.plan_activation``
    decide which one is in force on the canonical calendar day, and write
    back through ``AmendmentStore.set_active_amendment`` only when the
    stored flags disagree.

Architecture position:
    Kernel > Services.  Depends on the AmendmentStore protocol, the pure
    activation functions and an injected Clock.

Invariants enforced:
    - Read, decide, write happen strictly in that order for one owner.
    - Idempotent: a second run with unchanged data performs no write.
    - Each store request is bounded by ``request_timeout_seconds``.
    - "No qualifying amendment" is a successful result, never an exception.

Failure modes:
    - StorageUnavailableError -- read or write failed in the store.
    - StorageTimeoutError -- a store request exceeded its bound.  The
      abandoned SqlAmendmentStore write rolls back rather than committing.
    Both propagate; the batch runner counts them per owner.
"""

from __future__ import annotations

import asyncio
import time
from datetime import date, timezone, tzinfo
from typing import Awaitable, TypeVar

from workforce_kernel.domain.activation import plan_activation
from workforce_kernel.domain.clock import Clock, SystemClock
from workforce_kernel.domain.types import OwnerRef, RecalcResult, RecalcStatus
from workforce_kernel.exceptions import StorageTimeoutError
from workforce_kernel.logging_config import LogContext, get_logger
from workforce_kernel.services.amendment_store import AmendmentStore

logger = get_logger("services.recalculation")

T = TypeVar("T")


class PoRecalculationService:
    """Recalculates the active PO amendment for one owner at a time.

    Contract:
        ``recalculate_active_amendment(owner, today=None)`` returns a
        RecalcResult with status UNCHANGED or UPDATED, or raises a
        StorageError subclass.

    Non-goals:
        - Does NOT enumerate owners -- that is PoRecalculationRunner's job.
        - Does NOT retry failed store calls.
    """

    def __init__(
        self,
        store: AmendmentStore,
        clock: Clock | None = None,
        tz: tzinfo = timezone.utc,
        request_timeout_seconds: float = 10.0,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._tz = tz
        self._timeout = request_timeout_seconds

    @property
    def store(self) -> AmendmentStore:
        return self._store

    def today(self) -> date:
        """Canonical calendar day used when callers do not pass one."""
        return self._clock.today(self._tz)

    async def bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store call, converting an overrun into StorageTimeoutError."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise StorageTimeoutError(operation, self._timeout) from None

    async def recalculate_active_amendment(
        self,
        owner: OwnerRef,
        today: date | None = None,
    ) -> RecalcResult:
        as_of = today or self.today()
        start = time.monotonic()

        with LogContext.bind(owner_id=str(owner)):
            amendments = await self.bounded(
                "list_amendments", self._store.list_amendments(owner),
            )

            plan = plan_activation(amendments, as_of)

            for excluded in plan.excluded:
                logger.warning(
                    "po_amendment_excluded",
                    extra={
                        "amendment_id": str(excluded.amendment_id),
                        "reason": excluded.reason,
                    },
                )

            if not plan.requires_write:
                logger.debug(
                    "po_recalc_owner_unchanged",
                    extra={
                        "owner_label": owner.label,
                        "as_of": as_of,
                        "amendment_count": len(amendments),
                        "active_amendment_id": (
                            str(plan.desired_active_id) if plan.desired_active_id else None
                        ),
                    },
                )
                return RecalcResult(
                    owner=owner,
                    status=RecalcStatus.UNCHANGED,
                    active_amendment_id=plan.desired_active_id,
                    changed_count=0,
                    excluded=plan.excluded,
                    as_of=as_of,
                    duration_ms=int((time.monotonic() - start) * 1000),
                )

            await self.bounded(
                "set_active_amendment",
                self._store.set_active_amendment(owner, plan.desired_active_id),
            )

            logger.info(
                "po_recalc_owner_updated",
                extra={
                    "owner_label": owner.label,
                    "as_of": as_of,
                    "changed_count": len(plan.changes),
                    "active_amendment_id": (
                        str(plan.desired_active_id) if plan.desired_active_id else None
                    ),
                },
            )

            return RecalcResult(
                owner=owner,
                status=RecalcStatus.UPDATED,
                active_amendment_id=plan.desired_active_id,
                changed_count=len(plan.changes),
                excluded=plan.excluded,
                as_of=as_of,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
