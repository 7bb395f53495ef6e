from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from care_refresh.config import SIX_HOURS_IN_SECONDS
from care_refresh.core.pipeline import RefreshOrchestrator, RefreshRunReport

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Run the orchestrator immediately, then on a fixed-rate timer.

    Each tick starts a run in its own task. A tick that finds a run still in
    flight is skipped rather than queued.
    """

    def __init__(
        self,
        orchestrator: RefreshOrchestrator,
        period_seconds: float = SIX_HOURS_IN_SECONDS,
        on_report: Callable[[RefreshRunReport], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if period_seconds <= 0:
            raise ValueError("period_seconds must be > 0")
        self._orchestrator = orchestrator
        self._period_seconds = period_seconds
        self._on_report = on_report
        self._sleep = sleep
        self._in_progress = False
        self._timer: asyncio.Task | None = None
        self._runs: set[asyncio.Task] = set()
        self.last_report: RefreshRunReport | None = None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def started(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def trigger(self) -> RefreshRunReport | None:
        if self._in_progress:
            logger.warning("refresh_tick_skipped", extra={"reason": "run_in_progress"})
            return None
        self._in_progress = True
        try:
            report = await self._orchestrator.run_once()
        except Exception:
            logger.exception("refresh_run_crashed")
            return None
        finally:
            self._in_progress = False
        self.last_report = report
        if self._on_report:
            self._on_report(report)
        return report

    def start(self) -> None:
        if self.started:
            return
        logger.info("refresh_scheduler_started", extra={"period_seconds": self._period_seconds})
        self._timer = asyncio.create_task(self.run_forever())

    async def run_forever(self) -> None:
        while True:
            run = asyncio.create_task(self.trigger())
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)
            await self._sleep(self._period_seconds)

    async def stop(self) -> None:
        pending = [task for task in (self._timer, *self._runs) if task is not None]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._timer = None
        self._runs.clear()
        logger.info("refresh_scheduler_stopped")
