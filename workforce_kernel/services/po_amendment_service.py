"""
PoAmendmentService -- user-facing PO amendment operations.

Responsibility:
    Create, edit, delete and query PO amendments for a project or an
    employee-project assignment.  After every mutation the owner is
    recalculated so the new or changed range takes effect immediately,
    instead of waiting for the next scheduled run.

Architecture position:
    Kernel > Services.  Sits beside PoRecalculationService and shares its
    store; never writes ``is_active`` itself.

Invariants enforced:
    - ``po_number`` is trimmed and non-empty; ``end_date >= start_date``.
    - ``is_active`` cannot be passed in (ActiveFlagWriteError).
    - A recalculation failure after a successful edit is logged, not raised:
      the edit is stored and the next scheduled run reconciles the flag.

Failure modes:
    - InvalidAmendmentDataError for bad input.
    - OwnerNotFoundError / AmendmentNotFoundError for unknown ids.
    - StorageError subclasses when the edit itself cannot be stored.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any
from uuid import UUID

from workforce_kernel.domain.activation import suggest_next_start_date, validate_amendment
from workforce_kernel.domain.types import OwnerRef, PoAmendment
from workforce_kernel.exceptions import (
    ActiveFlagWriteError,
    InvalidAmendmentDataError,
    StorageError,
)
from workforce_kernel.logging_config import get_logger
from workforce_kernel.services.recalculation_service import PoRecalculationService

logger = get_logger("services.po_amendment")

_UNSET: Any = object()


class PoAmendmentService:
    """Create / edit / delete / query PO amendments.

    Contract:
        Every mutating method returns the amendment as stored after the
        follow-up recalculation, so ``is_active`` reflects today's truth.
    """

    def __init__(self, recalculation: PoRecalculationService):
        self._recalc = recalculation
        self._store = recalculation.store

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_po_amendments(self, owner: OwnerRef) -> tuple[PoAmendment, ...]:
        return await self._recalc.bounded(
            "list_amendments", self._store.list_amendments(owner),
        )

    async def get_active_po_amendment(self, owner: OwnerRef) -> PoAmendment | None:
        """The amendment currently flagged active for ``owner``, if any."""
        for amendment in await self.list_po_amendments(owner):
            if amendment.is_active:
                return amendment
        return None

    async def suggest_next_start_date(
        self, owner: OwnerRef, today: date | None = None,
    ) -> date:
        amendments = await self.list_po_amendments(owner)
        return suggest_next_start_date(amendments, today or self._recalc.today())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_po_amendment(
        self,
        owner: OwnerRef,
        po_number: str,
        start_date: date,
        end_date: date | None = None,
    ) -> PoAmendment:
        po_number = self._clean_po_number(po_number)
        self._check_range(start_date, end_date)

        created = await self._recalc.bounded(
            "add_amendment",
            self._store.add_amendment(owner, po_number, start_date, end_date),
        )
        logger.info(
            "po_amendment_created",
            extra={
                "owner": str(owner),
                "amendment_id": str(created.amendment_id),
                "po_number": po_number,
                "start_date": start_date,
                "end_date": end_date,
            },
        )
        return await self._reconcile(created)

    async def update_po_amendment(
        self,
        amendment_id: UUID,
        *,
        po_number: str = _UNSET,
        start_date: date = _UNSET,
        end_date: date | None = _UNSET,
        **other: Any,
    ) -> PoAmendment:
        if "is_active" in other:
            raise ActiveFlagWriteError(str(amendment_id))
        if other:
            raise InvalidAmendmentDataError(
                f"fields not editable: {sorted(other)}", str(amendment_id),
            )

        changes: dict[str, Any] = {}
        if po_number is not _UNSET:
            changes["po_number"] = self._clean_po_number(po_number)
        if start_date is not _UNSET:
            changes["start_date"] = start_date
        if end_date is not _UNSET:
            changes["end_date"] = end_date

        current = await self._recalc.bounded(
            "get_amendment", self._store.get_amendment(amendment_id),
        )
        if not changes:
            return current

        merged = replace(current, **changes)
        reason = validate_amendment(merged)
        if reason is not None:
            raise InvalidAmendmentDataError(reason, str(amendment_id))

        updated = await self._recalc.bounded(
            "update_amendment", self._store.update_amendment(amendment_id, changes),
        )
        logger.info(
            "po_amendment_updated",
            extra={
                "amendment_id": str(amendment_id),
                "fields": sorted(changes),
            },
        )
        return await self._reconcile(updated)

    async def delete_po_amendment(self, amendment_id: UUID) -> PoAmendment:
        """Delete an amendment and recalculate its owner.

        Returns the snapshot of the deleted row.
        """
        deleted = await self._recalc.bounded(
            "delete_amendment", self._store.delete_amendment(amendment_id),
        )
        logger.info(
            "po_amendment_deleted",
            extra={"amendment_id": str(amendment_id), "owner": str(deleted.owner)},
        )
        await self._recalculate_quietly(deleted.owner)
        return deleted

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _reconcile(self, amendment: PoAmendment) -> PoAmendment:
        if not await self._recalculate_quietly(amendment.owner):
            return amendment
        return await self._recalc.bounded(
            "get_amendment", self._store.get_amendment(amendment.amendment_id),
        )

    async def _recalculate_quietly(self, owner: OwnerRef) -> bool:
        try:
            await self._recalc.recalculate_active_amendment(owner)
        except StorageError:
            logger.warning(
                "po_recalc_after_edit_failed",
                extra={"owner": str(owner)},
                exc_info=True,
            )
            return False
        return True

    @staticmethod
    def _clean_po_number(po_number: str) -> str:
        cleaned = po_number.strip() if isinstance(po_number, str) else ""
        if not cleaned:
            raise InvalidAmendmentDataError("missing po_number")
        return cleaned

    @staticmethod
    def _check_range(start_date: date, end_date: date | None) -> None:
        if not isinstance(start_date, date):
            raise InvalidAmendmentDataError("missing or invalid start_date")
        if end_date is None:
            return
        if not isinstance(end_date, date):
            raise InvalidAmendmentDataError("invalid end_date")
        # datetime and date do not compare directly; ordinals are calendar days
        if end_date.toordinal() < start_date.toordinal():
            raise InvalidAmendmentDataError("end_date before start_date")
