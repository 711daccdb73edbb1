"""
Pure PO activation functions.

Contract:
    Given an owner's amendments and a calendar day, decide which amendment
    is in force and which stored ``is_active`` flags disagree with that.
    No I/O and no clock access: ``today`` always comes from the caller.

Architecture: workforce_kernel/domain.  ZERO I/O.

Invariants enforced:
    - At most one amendment is selected per owner.
    - Ranges are inclusive at both ends; ``end_date=None`` is open-ended.
    - An amendment whose ``end_date`` is before ``today`` never qualifies.
    - Overlapping qualifying ranges resolve to the latest ``start_date``,
      then the greatest ``str(amendment_id)``.
    - Malformed amendments never qualify and never abort the plan.
    - The plan is minimal: a matching stored state yields no changes.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from workforce_kernel.domain.types import (
    ActivationPlan,
    ExcludedAmendment,
    FlagChange,
    PoAmendment,
)


def _as_day(value: date) -> date:
    # datetime is a date subclass but does not compare with plain dates
    if isinstance(value, datetime):
        return value.date()
    return value


def validate_amendment(amendment: PoAmendment) -> str | None:
    """Return why ``amendment`` is malformed, or None if it is usable."""
    if not isinstance(amendment.po_number, str) or not amendment.po_number.strip():
        return "missing po_number"
    if not isinstance(amendment.start_date, date):
        return "missing or invalid start_date"
    if amendment.end_date is not None:
        if not isinstance(amendment.end_date, date):
            return "invalid end_date"
        if _as_day(amendment.end_date) < _as_day(amendment.start_date):
            return "end_date before start_date"
    return None


def qualifies(amendment: PoAmendment, today: date) -> bool:
    """True if ``today`` falls inside the amendment's inclusive range."""
    if validate_amendment(amendment) is not None:
        return False
    start = _as_day(amendment.start_date)
    if start > today:
        return False
    if amendment.end_date is None:
        return True
    return _as_day(amendment.end_date) >= today


def _selection_key(amendment: PoAmendment) -> tuple[date, str]:
    return (_as_day(amendment.start_date), str(amendment.amendment_id))


def select_active(
    amendments: Iterable[PoAmendment], today: date,
) -> PoAmendment | None:
    """Pick the amendment in force on ``today``, or None if none qualifies."""
    candidates = [a for a in amendments if qualifies(a, today)]
    if not candidates:
        return None
    return max(candidates, key=_selection_key)


def plan_activation(
    amendments: Sequence[PoAmendment], today: date,
) -> ActivationPlan:
    """Compare computed truth with stored flags for one owner.

    Changes list clears first, then the single set, so applying them in
    order never leaves two amendments flagged at once.
    """
    excluded: list[ExcludedAmendment] = []
    for amendment in amendments:
        reason = validate_amendment(amendment)
        if reason is not None:
            excluded.append(ExcludedAmendment(amendment.amendment_id, reason))

    chosen = select_active(amendments, today)
    desired_id = chosen.amendment_id if chosen is not None else None

    clears: list[FlagChange] = []
    sets: list[FlagChange] = []
    for amendment in sorted(amendments, key=lambda a: str(a.amendment_id)):
        should_be_active = amendment.amendment_id == desired_id
        if amendment.is_active == should_be_active:
            continue
        change = FlagChange(amendment.amendment_id, should_be_active)
        (sets if should_be_active else clears).append(change)

    return ActivationPlan(
        desired_active_id=desired_id,
        changes=tuple(clears + sets),
        excluded=tuple(excluded),
    )


def apply_plan(
    amendments: Sequence[PoAmendment], plan: ActivationPlan,
) -> tuple[PoAmendment, ...]:
    """Return the amendments as they look after ``plan`` is written."""
    flips = {c.amendment_id: c.is_active for c in plan.changes}
    return tuple(
        replace(a, is_active=flips[a.amendment_id]) if a.amendment_id in flips else a
        for a in amendments
    )


def suggest_next_start_date(
    amendments: Iterable[PoAmendment], today: date,
) -> date:
    """Start date to pre-fill for a new amendment.

    The day after the latest ``end_date`` among valid amendments; ``today``
    when there are none or all of them are open-ended.
    """
    end_dates = [
        _as_day(a.end_date)
        for a in amendments
        if validate_amendment(a) is None and a.end_date is not None
    ]
    if not end_dates:
        return today
    return max(end_dates) + timedelta(days=1)
