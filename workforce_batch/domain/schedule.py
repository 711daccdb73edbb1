"""
Pure nightly-trigger timing functions.

Contract:
    ``next_local_midnight``, ``next_run_after`` and ``seconds_until`` are
    PURE -- no I/O, no clock access.  The scheduler passes in ``now`` from
    its injected Clock.

Architecture: workforce_batch/domain.  ZERO I/O.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone, tzinfo

DEFAULT_INTERVAL = timedelta(hours=24)


def next_local_midnight(now: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """First 00:00 in ``tz`` strictly after ``now``.

    Aware ``now`` values are converted into ``tz``; naive values are taken
    as already local.  The result carries ``tz`` when ``now`` is aware.
    """
    local = now.astimezone(tz) if now.tzinfo is not None else now
    tomorrow = local.date() + timedelta(days=1)
    if now.tzinfo is None:
        return datetime.combine(tomorrow, time.min)
    return datetime.combine(tomorrow, time.min, tzinfo=tz)


def next_run_after(
    previous: datetime,
    now: datetime,
    interval: timedelta = DEFAULT_INTERVAL,
) -> datetime:
    """Advance ``previous`` by whole intervals until it is after ``now``.

    Skips slots that were missed (suspended host, long run) instead of
    firing them back to back.
    """
    if interval <= timedelta(0):
        raise ValueError(f"Interval must be positive: {interval}")
    target = previous + interval
    while target <= now:
        target += interval
    return target


def seconds_until(now: datetime, target: datetime) -> float:
    """Non-negative delay in seconds from ``now`` to ``target``."""
    return max(0.0, (target - now).total_seconds())
