"""Services for the workforce kernel (store, recalculation, amendments)."""

from workforce_kernel.services.amendment_store import AmendmentStore, SqlAmendmentStore
from workforce_kernel.services.po_amendment_service import PoAmendmentService
from workforce_kernel.services.recalculation_service import PoRecalculationService

__all__ = [
    "AmendmentStore",
    "PoAmendmentService",
    "PoRecalculationService",
    "SqlAmendmentStore",
]
