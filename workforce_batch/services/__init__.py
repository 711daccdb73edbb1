"""
workforce_batch.services -- Runner and scheduler for PO recalculation.
"""

from workforce_batch.services.runner import PoRecalculationRunner
from workforce_batch.services.scheduler import PoScheduler

__all__ = ["PoRecalculationRunner", "PoScheduler"]
