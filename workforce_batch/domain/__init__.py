"""
workforce_batch.domain -- Pure types and timing functions for PO scheduling.

ZERO I/O.  All types are frozen dataclasses.
"""

from workforce_batch.domain.schedule import (
    next_local_midnight,
    next_run_after,
    seconds_until,
)
from workforce_batch.domain.types import RunState, SchedulerRunResult, TriggerKind

__all__ = [
    "RunState",
    "SchedulerRunResult",
    "TriggerKind",
    "next_local_midnight",
    "next_run_after",
    "seconds_until",
]
