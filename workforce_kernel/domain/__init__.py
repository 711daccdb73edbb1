"""
workforce_kernel.domain -- Pure types, clock and activation rules.

ZERO I/O.  All types are frozen dataclasses.
"""

from workforce_kernel.domain.activation import (
    plan_activation,
    qualifies,
    select_active,
    suggest_next_start_date,
    validate_amendment,
)
from workforce_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workforce_kernel.domain.types import (
    ActivationPlan,
    BillingType,
    EmployeeProject,
    ExcludedAmendment,
    FlagChange,
    OwnerKind,
    OwnerRef,
    PoAmendment,
    Project,
    ProjectStatus,
    RecalcResult,
    RecalcStatus,
)

__all__ = [
    "ActivationPlan",
    "BillingType",
    "Clock",
    "DeterministicClock",
    "EmployeeProject",
    "ExcludedAmendment",
    "FlagChange",
    "OwnerKind",
    "OwnerRef",
    "PoAmendment",
    "Project",
    "ProjectStatus",
    "RecalcResult",
    "RecalcStatus",
    "SystemClock",
    "plan_activation",
    "qualifies",
    "select_active",
    "suggest_next_start_date",
    "validate_amendment",
]
