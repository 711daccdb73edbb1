"""
workforce_kernel.domain.types -- Pure frozen dataclasses for the PO core.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.  ORM models convert to these via ``to_dto()``;
everything above the store works on these snapshots only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =============================================================================
# Enums
# =============================================================================


class ProjectStatus(str, Enum):
    """Project lifecycle status.  Only ACTIVE projects are recalculated."""

    ACTIVE = "Active"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    CANCELLED = "Cancelled"


class BillingType(str, Enum):
    MONTHLY = "Monthly"
    FIXED = "Fixed"
    DAILY = "Daily"
    HOURLY = "Hourly"


class OwnerKind(str, Enum):
    """What a PO amendment list hangs off."""

    PROJECT = "project"
    ASSIGNMENT = "assignment"  # employee-project assignment


class RecalcStatus(str, Enum):
    """Outcome of recalculating one owner."""

    UNCHANGED = "unchanged"  # Stored flags already matched, no write
    UPDATED = "updated"  # One write reconciled the flags
    FAILED = "failed"  # Read or write failed or timed out; a timed-out write is rolled back


# =============================================================================
# Owner
# =============================================================================


@dataclass(frozen=True)
class OwnerRef:
    """Unit of recalculation: a project or an employee-project assignment.

    ``label`` is a display name for logs and does not take part in equality.
    """

    kind: OwnerKind
    owner_id: UUID
    label: str | None = field(default=None, compare=False)

    @classmethod
    def project(cls, project_id: UUID, label: str | None = None) -> OwnerRef:
        return cls(OwnerKind.PROJECT, project_id, label)

    @classmethod
    def assignment(cls, assignment_id: UUID, label: str | None = None) -> OwnerRef:
        return cls(OwnerKind.ASSIGNMENT, assignment_id, label)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.owner_id}"


# =============================================================================
# Entity snapshots
# =============================================================================


@dataclass(frozen=True)
class Project:
    project_id: UUID
    name: str
    client: str
    status: ProjectStatus = ProjectStatus.ACTIVE
    description: str | None = None
    department: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    po_number: str | None = None  # Legacy PO recorded on the project itself

    @property
    def owner(self) -> OwnerRef:
        return OwnerRef.project(self.project_id, self.name)


@dataclass(frozen=True)
class EmployeeProject:
    """Assignment of one employee to one project (read-only to the core)."""

    assignment_id: UUID
    employee_id: UUID
    project_id: UUID
    allocation_percentage: int = 100
    start_date: date | None = None
    end_date: date | None = None
    role_in_project: str | None = None
    po_number: str | None = None
    billing_type: BillingType | None = None
    billing_rate: Decimal | None = None

    @property
    def owner(self) -> OwnerRef:
        return OwnerRef.assignment(self.assignment_id)


@dataclass(frozen=True)
class PoAmendment:
    """Immutable snapshot of one PO amendment.

    ``start_date`` and ``end_date`` are inclusive.  ``end_date=None`` means
    open-ended.  ``is_active`` is cached state written only by recalculation.
    ``start_date`` is typed optional so malformed rows can be represented
    and excluded instead of crashing the owner's recalculation.
    """

    amendment_id: UUID
    project_id: UUID
    po_number: str
    start_date: date | None
    end_date: date | None = None
    is_active: bool = False
    assignment_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def owner(self) -> OwnerRef:
        if self.assignment_id is not None:
            return OwnerRef.assignment(self.assignment_id)
        return OwnerRef.project(self.project_id)


# =============================================================================
# Recalculation DTOs
# =============================================================================


@dataclass(frozen=True)
class FlagChange:
    """One ``is_active`` value that must change to match the computed truth."""

    amendment_id: UUID
    is_active: bool


@dataclass(frozen=True)
class ExcludedAmendment:
    """Amendment left out of selection because its data is malformed."""

    amendment_id: UUID
    reason: str


@dataclass(frozen=True)
class ActivationPlan:
    """Desired active amendment plus the minimal flag changes to get there."""

    desired_active_id: UUID | None
    changes: tuple[FlagChange, ...] = ()
    excluded: tuple[ExcludedAmendment, ...] = ()

    @property
    def requires_write(self) -> bool:
        return bool(self.changes)


@dataclass(frozen=True)
class RecalcResult:
    """Result of recalculating one owner.

    ``active_amendment_id is None`` with a successful status means the
    owner has no current PO -- a valid state, not an error.
    """

    owner: OwnerRef
    status: RecalcStatus
    active_amendment_id: UUID | None = None
    changed_count: int = 0
    excluded: tuple[ExcludedAmendment, ...] = ()
    as_of: date | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status != RecalcStatus.FAILED
