from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from care_refresh.core.pipeline import RefreshRunReport
from care_refresh.jobs.scheduler import RefreshScheduler


class BlockingOrchestrator:
    def __init__(self) -> None:
        self.calls = 0
        self.release = asyncio.Event()

    async def run_once(self) -> RefreshRunReport:
        self.calls += 1
        await self.release.wait()
        return RefreshRunReport(started_at=datetime(2026, 10, 19, tzinfo=timezone.utc))


class InstantOrchestrator:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self._error = error

    async def run_once(self) -> RefreshRunReport:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return RefreshRunReport(started_at=datetime(2026, 10, 19, tzinfo=timezone.utc))


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_tick_during_active_run_is_skipped() -> None:
    orchestrator = BlockingOrchestrator()
    scheduler = RefreshScheduler(orchestrator)

    first = asyncio.create_task(scheduler.trigger())
    await _settle()
    skipped = await scheduler.trigger()
    orchestrator.release.set()
    report = await first

    assert skipped is None
    assert report is not None
    assert orchestrator.calls == 1
    assert scheduler.in_progress is False


@pytest.mark.asyncio
async def test_start_runs_immediately_then_waits_for_period() -> None:
    orchestrator = InstantOrchestrator()
    periods: list[float] = []
    never = asyncio.Event()

    async def wait_forever(seconds: float) -> None:
        periods.append(seconds)
        await never.wait()

    reports: list[RefreshRunReport] = []
    scheduler = RefreshScheduler(orchestrator, period_seconds=21600, on_report=reports.append, sleep=wait_forever)

    scheduler.start()
    await _settle()

    assert orchestrator.calls == 1
    assert periods == [21600]
    assert scheduler.last_report is reports[0]
    assert scheduler.started is True

    await scheduler.stop()
    assert scheduler.started is False


@pytest.mark.asyncio
async def test_timer_keeps_ticking_at_fixed_rate() -> None:
    orchestrator = InstantOrchestrator()
    ticks = {"count": 0}
    never = asyncio.Event()

    async def short_period(_: float) -> None:
        ticks["count"] += 1
        if ticks["count"] >= 3:
            await never.wait()

    scheduler = RefreshScheduler(orchestrator, sleep=short_period)
    scheduler.start()
    await _settle()
    await scheduler.stop()

    assert orchestrator.calls == 3


@pytest.mark.asyncio
async def test_crashed_run_releases_guard() -> None:
    orchestrator = InstantOrchestrator(error=RuntimeError("boom"))
    scheduler = RefreshScheduler(orchestrator)

    assert await scheduler.trigger() is None
    assert scheduler.in_progress is False
    assert await scheduler.trigger() is None
    assert orchestrator.calls == 2


def test_period_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RefreshScheduler(InstantOrchestrator(), period_seconds=0)
