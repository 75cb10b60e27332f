"""Closure timing for voting sessions.

This module provides the SessionScheduler class that makes sure every
session in voting is closed once its voting-end time has passed, even when
the process was down at that moment. It uses two horizons:

- Sessions ending within the near-term horizon (24 hours by default) get a
  one-shot timer at the exact deadline.
- Sessions further out are left to a daily sweep, aligned to a fixed UTC
  hour, which arms timers for sessions that have entered the horizon and
  retries closures that failed earlier.

On start a recovery pass closes every overdue session before anything else
is scheduled.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from watchparty_stage.core.settings import settings
from watchparty_stage.db.time import ensure_utc, utcnow
from watchparty_stage.models.session import SESSION_STATUS_VOTING
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.closure import ClosureEngine, ClosureResult

# Configure logger for this module
logger = logging.getLogger(__name__)

SCHEDULE_CLOSED_NOW = "closed_now"
SCHEDULE_ARMED = "armed"
SCHEDULE_DEFERRED = "deferred"
SCHEDULE_SKIPPED = "skipped"


@dataclass
class ArmedTimer:
    """A pending one-shot closure for one session."""

    handle: asyncio.TimerHandle
    deadline: datetime


@dataclass
class RecoveryReport:
    """Sessions touched by a recovery pass or sweep."""

    closed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    armed: list[int] = field(default_factory=list)
    deferred: list[int] = field(default_factory=list)


class SessionScheduler:
    """Owns the timers that trigger voting closure.

    Timer handles live only in memory, keyed by session id. A missing timer
    does not mean the session is closed; it may simply be beyond the horizon
    and waiting for the next sweep.
    """

    def __init__(
        self,
        store: SessionStore,
        closure: ClosureEngine,
        *,
        horizon: timedelta | None = None,
        sweep_hour_utc: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Session store used to find sessions in voting
            closure: Engine invoked when a voting window ends
            horizon: Near-term window for exact timers; defaults to settings
            sweep_hour_utc: Hour of the daily sweep; defaults to settings
            clock: Source of the current time, overridable in tests
        """
        self.store = store
        self.closure = closure
        self.horizon = horizon or timedelta(hours=settings.scheduler_horizon_hours)
        self.sweep_hour_utc = (
            settings.scheduler_sweep_hour_utc if sweep_hour_utc is None else sweep_hour_utc
        )
        self.clock = clock
        self._timers: dict[int, ArmedTimer] = {}
        self._running: set[asyncio.Task[ClosureResult | None]] = set()
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    # --- Public operations --------------------------------------------------------
    async def schedule_closure(self, session_id: int, voting_end_time: datetime | None) -> str:
        """Arrange closure of ``session_id`` at ``voting_end_time``.

        Any timer already armed for the session is cleared first. An end time
        in the past closes the session immediately; one within the horizon arms
        a timer; anything later is left to the daily sweep.

        Returns:
            One of the ``SCHEDULE_*`` constants describing what was done
        """
        self.cancel_schedule(session_id)

        deadline = ensure_utc(voting_end_time)
        if deadline is None:
            logger.debug("Session %d has no voting end time set", session_id)
            return SCHEDULE_SKIPPED

        remaining = deadline - self.clock()
        if remaining <= timedelta(0):
            logger.info("Session %d voting time already passed, closing now", session_id)
            await self._run_closure(session_id, trigger="overdue")
            return SCHEDULE_CLOSED_NOW

        if remaining <= self.horizon:
            loop = asyncio.get_running_loop()
            handle = loop.call_later(remaining.total_seconds(), self._on_timer, session_id)
            self._timers[session_id] = ArmedTimer(handle=handle, deadline=deadline)
            logger.info(
                "Scheduled voting end for session %d in %.1f hours",
                session_id,
                remaining.total_seconds() / 3600,
            )
            return SCHEDULE_ARMED

        logger.info(
            "Session %d voting ends in %d days - will be picked up by the daily sweep",
            session_id,
            remaining.days,
        )
        return SCHEDULE_DEFERRED

    def cancel_schedule(self, session_id: int) -> bool:
        """Clear the pending timer for a session.

        Safe to call when no timer is armed. Returns True if one was cleared.
        """
        timer = self._timers.pop(session_id, None)
        if timer is None:
            return False
        timer.handle.cancel()
        logger.info("Cleared scheduled closure for session %d", session_id)
        return True

    async def recover_on_startup(self) -> RecoveryReport:
        """Close sessions whose window ended while offline, then schedule the rest."""
        report = RecoveryReport()
        overdue: list[int] = []
        upcoming: list[tuple[int, datetime]] = []

        now = self.clock()
        for voting_session in await self._candidates():
            deadline = ensure_utc(voting_session.voting_end_time)
            if deadline <= now:
                overdue.append(voting_session.id)
            else:
                upcoming.append((voting_session.id, deadline))

        for session_id in overdue:
            logger.info("Recovering missed closure for session %d", session_id)
            result = await self._run_closure(session_id, trigger="recovery")
            (report.closed if result is not None else report.failed).append(session_id)

        for session_id, deadline in upcoming:
            await self._record(report, session_id, await self.schedule_closure(session_id, deadline))

        logger.info(
            "Recovery pass closed %d session(s), armed %d, deferred %d, failed %d",
            len(report.closed),
            len(report.armed),
            len(report.deferred),
            len(report.failed),
        )
        return report

    async def sweep(self) -> RecoveryReport:
        """Arm timers for sessions that entered the horizon and retry overdue ones."""
        report = RecoveryReport()
        for voting_session in await self._candidates():
            armed = self._timers.get(voting_session.id)
            deadline = ensure_utc(voting_session.voting_end_time)
            if armed is not None and armed.deadline == deadline:
                continue
            outcome = await self.schedule_closure(voting_session.id, deadline)
            await self._record(report, voting_session.id, outcome)

        logger.info(
            "Daily sweep armed %d timer(s), closed %d overdue session(s)",
            len(report.armed),
            len(report.closed),
        )
        return report

    def armed_sessions(self) -> dict[int, datetime]:
        """Return armed timers as session id -> deadline."""
        return {session_id: timer.deadline for session_id, timer in self._timers.items()}

    # --- Background lifecycle -----------------------------------------------------
    async def start(self) -> RecoveryReport:
        """Run the recovery pass, then start the daily sweep loop."""
        report = await self.recover_on_startup()
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())
        return report

    async def stop(self) -> None:
        """Stop the sweep loop, disarm every timer and wait for running closures."""
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None

        for session_id in list(self._timers):
            self.cancel_schedule(session_id)

        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    def seconds_until_next_sweep(self, now: datetime | None = None) -> float:
        """Return the delay until the next aligned daily sweep."""
        now = now or self.clock()
        next_sweep = now.replace(hour=self.sweep_hour_utc, minute=0, second=0, microsecond=0)
        if next_sweep <= now:
            next_sweep += timedelta(days=1)
        return (next_sweep - now).total_seconds()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            delay = self.seconds_until_next_sweep()
            logger.debug("Next daily session sweep in %.0f seconds", delay)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                return
            except TimeoutError:
                pass

            try:
                await self.sweep()
            except Exception:
                logger.exception("Daily session sweep failed")

    # --- Internals ----------------------------------------------------------------
    async def _candidates(self):
        sessions = await self.store.list_sessions_by_status(SESSION_STATUS_VOTING)
        return [
            voting_session
            for voting_session in sessions
            if voting_session.voting_end_time is not None
            and not voting_session.awaiting_tie_break
        ]

    async def _record(self, report: RecoveryReport, session_id: int, outcome: str) -> None:
        if outcome == SCHEDULE_ARMED:
            report.armed.append(session_id)
        elif outcome == SCHEDULE_DEFERRED:
            report.deferred.append(session_id)
        elif outcome == SCHEDULE_CLOSED_NOW:
            report.closed.append(session_id)

    def _on_timer(self, session_id: int) -> None:
        self._timers.pop(session_id, None)
        logger.info("Scheduled voting closure triggered for session %d", session_id)
        task = asyncio.ensure_future(self._run_closure(session_id, trigger="timer"))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run_closure(self, session_id: int, *, trigger: str) -> ClosureResult | None:
        # Failures are not retried here; the next sweep or restart picks them up.
        try:
            return await self.closure.close_session(session_id)
        except Exception:
            logger.exception(
                "Closure for session %d failed (trigger=%s); leaving it in voting",
                session_id,
                trigger,
            )
            return None
