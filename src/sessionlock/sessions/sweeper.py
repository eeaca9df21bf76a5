"""
Background sweep of expired sessions and expired lock rows.

Each tick terminates Active sessions past their expiry and reaps lock
rows left behind by crashed holders. Running a sweeper in every process
is safe: both operations are idempotent.

Example:
    >>> sweeper = ExpirySweeper(session_manager, lock_manager, interval=60.0)
    >>> sweeper.start()
    >>> ...
    >>> await sweeper.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime

from sessionlock.locks.manager import LockManager
from sessionlock.sessions.service import SessionManager
from sessionlock.types import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepReport:
    """
    What one sweep did.

    Attributes:
        expired_sessions: Sessions moved to Terminated with reason ``expired``
        reaped_locks: Expired lock rows deleted
        ran_at: When the sweep started
    """

    expired_sessions: int
    reaped_locks: int
    ran_at: datetime


class ExpirySweeper:
    """Periodically expires sessions and reaps locks on an asyncio task."""

    def __init__(
        self,
        session_manager: SessionManager,
        lock_manager: LockManager | None = None,
        *,
        interval: float = 60.0,
        clock: Clock = utc_now,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._sessions = session_manager
        self._locks = lock_manager
        self._interval = interval
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._last_report: SweepReport | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_report(self) -> SweepReport | None:
        return self._last_report

    async def run_once(self) -> SweepReport:
        """Run one sweep now."""
        ran_at = self._clock()
        summary = await self._sessions.expire_sessions()
        reaped = await self._locks.reap_expired() if self._locks is not None else 0
        report = SweepReport(expired_sessions=summary.count, reaped_locks=reaped, ran_at=ran_at)
        self._last_report = report
        logger.debug(
            "Expiry sweep: expired_sessions=%d, reaped_locks=%d",
            report.expired_sessions,
            report.reaped_locks,
        )
        return report

    def start(self) -> None:
        """Start sweeping in the background. Calling it twice is a no-op."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="sessionlock-expiry-sweeper")
        logger.info("Expiry sweeper started (interval=%.1fs)", self._interval)

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Expiry sweeper stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error in expiry sweep: %s", e, exc_info=True)
            await asyncio.sleep(self._interval)


__all__ = ["ExpirySweeper", "SweepReport"]
