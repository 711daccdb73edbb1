"""
PoScheduler -- asyncio trigger layer for PO recalculation runs.

Contract:
    Fires ``PoRecalculationRunner.recalculate_all_active_pos`` on three
    triggers: once per login (``on_session_established``), nightly at local
    midnight and every ``interval_hours`` after (``start`` / ``stop``), and
    on demand (``trigger_now``).

Architecture: workforce_batch/services.  Uses workforce_batch.domain.schedule
    for pure timing and an injected Clock for "now".  All methods must be
    called from inside a running event loop.

Invariants enforced:
    - At most one run in flight.  A trigger arriving while RUNNING joins
      the in-flight run instead of starting a second one, unless it asks
      for a different calendar day; then it waits and runs afterwards.
    - A login fires once per session key; ``on_session_ended`` re-arms.
    - Every run task has a done-callback, so a failed run is always
      logged and never surfaces as "Task exception was never retrieved".
    - Graceful shutdown: ``stop`` cancels the timer, then waits for the
      in-flight run up to ``timeout`` before cancelling it.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Awaitable, Callable

from workforce_kernel.domain.clock import Clock, SystemClock
from workforce_kernel.logging_config import get_logger

from workforce_batch.domain.schedule import (
    next_local_midnight,
    next_run_after,
    seconds_until,
)
from workforce_batch.domain.types import RunState, SchedulerRunResult, TriggerKind
from workforce_batch.services.runner import PoRecalculationRunner

logger = get_logger("batch.scheduler")


class PoScheduler:
    """Owns the run state machine and the nightly timer.

    Non-goals:
        - NOT a distributed scheduler; one instance per process.
        - Does NOT persist the last run time; a restart waits for the next
          midnight (or the next login).
    """

    def __init__(
        self,
        runner: PoRecalculationRunner,
        clock: Clock | None = None,
        tz: tzinfo = timezone.utc,
        interval_hours: int = 24,
        run_on_login: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval_hours < 1:
            raise ValueError(f"interval_hours must be >= 1: {interval_hours}")
        self._runner = runner
        self._clock = clock or SystemClock()
        self._tz = tz
        self._interval = timedelta(hours=interval_hours)
        self._run_on_login = run_on_login
        self._sleep = sleep

        self._state = RunState.IDLE
        self._current: asyncio.Task[SchedulerRunResult] | None = None
        self._current_today: date | None = None  # None: the runner's own default day
        self._last_result: SchedulerRunResult | None = None
        self._session_key: str | None = None
        self._timer: asyncio.Task[None] | None = None
        self._next_run_at: datetime | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def last_result(self) -> SchedulerRunResult | None:
        return self._last_result

    @property
    def next_run_at(self) -> datetime | None:
        """When the nightly timer fires next, or None when stopped."""
        return self._next_run_at

    @property
    def is_running(self) -> bool:
        """Whether the nightly timer is active."""
        return self._timer is not None and not self._timer.done()

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def on_session_established(
        self, session_key: str,
    ) -> asyncio.Task[SchedulerRunResult] | None:
        """Fire one run for a fresh login.

        Returns the run task (possibly one already in flight), or None when
        this session key was already handled or login runs are disabled.
        """
        if not self._run_on_login:
            return None
        if session_key == self._session_key:
            logger.debug("po_scheduler_login_already_handled")
            return None
        self._session_key = session_key
        logger.info("po_scheduler_login_trigger")
        return self._launch(TriggerKind.SESSION_START)

    def on_session_ended(self) -> None:
        """Forget the current login so the next one triggers again."""
        self._session_key = None
        logger.debug("po_scheduler_login_rearmed")

    async def trigger_now(self, today: date | None = None) -> SchedulerRunResult:
        """Run now (or join the in-flight run) and return its result.

        An explicit ``today`` only joins a run evaluating that same day.
        Otherwise the in-flight run is allowed to settle and a fresh run
        starts for ``today``.
        """
        while (
            today is not None
            and self._current is not None
            and not self._current.done()
            and self._current_today != today
        ):
            logger.info(
                "po_scheduler_run_queued",
                extra={"as_of": today, "in_flight_as_of": self._current_today},
            )
            await asyncio.wait({self._current})
        return await asyncio.shield(self._launch(TriggerKind.MANUAL, today))

    # -------------------------------------------------------------------------
    # Nightly timer
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the nightly timer (idempotent)."""
        if self.is_running:
            logger.warning("po_scheduler_already_running")
            return
        self._timer = asyncio.get_running_loop().create_task(
            self._nightly_loop(), name="po-recalc-nightly",
        )
        self._timer.add_done_callback(self._on_timer_done)
        logger.info(
            "po_scheduler_started",
            extra={"interval_hours": int(self._interval.total_seconds() // 3600)},
        )

    async def stop(self, timeout: float = 30.0) -> None:
        """Cancel the timer and let the in-flight run finish within ``timeout``."""
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass
        self._next_run_at = None

        current = self._current
        if current is not None and not current.done():
            _, pending = await asyncio.wait({current}, timeout=timeout)
            if pending:
                logger.warning("po_scheduler_run_cancelled_on_stop")
                current.cancel()
                await asyncio.wait({current})

        logger.info("po_scheduler_stopped")

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _launch(
        self, trigger: TriggerKind, today: date | None = None,
    ) -> asyncio.Task[SchedulerRunResult]:
        if self._current is not None and not self._current.done():
            logger.info("po_scheduler_run_joined", extra={"trigger": trigger.value})
            return self._current

        self._state = RunState.RUNNING
        task = asyncio.get_running_loop().create_task(
            self._execute(trigger, today), name=f"po-recalc-{trigger.value}",
        )
        task.add_done_callback(self._on_run_done)
        self._current = task
        self._current_today = today
        return task

    async def _execute(
        self, trigger: TriggerKind, today: date | None,
    ) -> SchedulerRunResult:
        try:
            result = await self._runner.recalculate_all_active_pos(
                today=today, trigger=trigger,
            )
            self._last_result = result
            return result
        finally:
            self._state = RunState.COMPLETED

    def _on_run_done(self, task: asyncio.Task[SchedulerRunResult]) -> None:
        if task.cancelled():
            logger.warning("po_scheduler_run_cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "po_scheduler_run_failed",
                extra={"error": str(exc)},
                exc_info=(type(exc), exc, exc.__traceback__),
            )
            return
        result = task.result()
        logger.info(
            "po_scheduler_run_settled",
            extra={
                "trigger": result.trigger.value,
                "processed": result.processed,
                "errors": result.errors,
            },
        )

    async def _nightly_loop(self) -> None:
        target = next_local_midnight(self._clock.now(), self._tz)
        while True:
            self._next_run_at = target
            logger.debug("po_scheduler_next_run", extra={"next_run_at": target})
            await self._sleep(seconds_until(self._clock.now(), target))
            # Outcome is logged by the run's done-callback.
            await asyncio.wait({self._launch(TriggerKind.NIGHTLY)})
            target = next_run_after(target, self._clock.now(), self._interval)

    def _on_timer_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "po_scheduler_timer_failed",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
