"""Background sweep of expired class timers.

Runs inside the application lifespan so that assessments behind an expired
timer get their 0% attempt even when no client is polling.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.progress.controller import AutoCompleteReport
from src.progress.dependencies import build_controller
from src.progress.protocols import Clock


logger = logging.getLogger(__name__)


class TimerSweeper:
    """Periodically auto-completes and retires expired timers of every user."""

    def __init__(
        self,
        session_factory: Callable[[], Any],
        clock: Clock,
        interval_seconds: float,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> AutoCompleteReport:
        """Run a single sweep in its own session."""
        session: AsyncSession
        async with self.session_factory() as session:
            controller = build_controller(session, self.clock)
            report = await controller.sweep_expired_timers(self.clock.now())

        if report.expired_class_ids:
            logger.info(
                f"Timer sweep: {len(report.expired_class_ids)} expired timer(s), "
                f"{len(report.completed)} assessment(s) auto-completed, {len(report.failures)} failure(s)"
            )
        return report

    async def _run(self) -> None:
        logger.info(f"Timer sweeper started (every {self.interval_seconds}s)")
        while not self._stopping.is_set():
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Timer sweep failed; retrying on next tick")
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
        logger.info("Timer sweeper stopped")

    def start(self) -> None:
        if self.interval_seconds <= 0:
            logger.info("Timer sweeper disabled")
            return
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name="timer-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
