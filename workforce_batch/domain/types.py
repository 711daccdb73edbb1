"""
workforce_batch.domain.types -- Pure frozen dataclasses for PO scheduling.

ZERO I/O.  Follows workforce_kernel.domain.types: frozen dataclasses with
enum status fields and tuples for immutable collections.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from workforce_kernel.domain.types import RecalcResult, RecalcStatus


class RunState(str, Enum):
    """Lifecycle of one scheduler invocation."""

    IDLE = "idle"  # Nothing started yet
    RUNNING = "running"  # Batch in flight
    COMPLETED = "completed"  # Batch settled (success or aggregate failure)


class TriggerKind(str, Enum):
    """What caused a recalculation run."""

    SESSION_START = "session_start"  # First authenticated session of a login
    NIGHTLY = "nightly"  # Local-midnight timer
    MANUAL = "manual"  # trigger_now() / command line


@dataclass(frozen=True)
class SchedulerRunResult:
    """Aggregate outcome of ``recalculate_all_active_pos``.

    ``processed`` counts owners recalculated successfully, ``errors`` the
    owners (or assignment listings) that failed.  ``project_query_failed``
    marks a run that could not list active projects and did nothing.
    """

    run_id: UUID
    trigger: TriggerKind
    as_of: date
    processed: int = 0
    errors: int = 0
    owner_results: tuple[RecalcResult, ...] = ()
    project_query_failed: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def attempted(self) -> int:
        return self.processed + self.errors

    @property
    def updated(self) -> int:
        return sum(1 for r in self.owner_results if r.status == RecalcStatus.UPDATED)
