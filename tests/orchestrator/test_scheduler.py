"""
Tests for the cron-driven refresh scheduler.
"""

import asyncio
from dataclasses import replace

import pytest

from core.exceptions import SchedulerRegistrationError
from data_ingestion.types import RefreshConfig, RefreshRunResult, RunStatus
from orchestrator.scheduler import JOB_ID, RefreshScheduler


class FakeRun:
    """Run callable that blocks until released or cancelled."""

    def __init__(self, honour_cancel: bool = True):
        self.honour_cancel = honour_cancel
        self.calls = 0
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def __call__(self, cancel_event: asyncio.Event) -> RefreshRunResult:
        self.calls += 1
        self.started.set()
        waiters = [asyncio.ensure_future(self.release.wait())]
        if self.honour_cancel:
            waiters.append(asyncio.ensure_future(cancel_event.wait()))
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        status = RunStatus.CANCELED if cancel_event.is_set() else RunStatus.COMPLETED
        return RefreshRunResult(status=status)


@pytest.fixture
def config():
    return RefreshConfig(schedule="0 2 * * *", drain_timeout_seconds=0.2)


class TestRegistration:

    @pytest.mark.asyncio
    async def test_invalid_cron_is_fatal(self, config):
        scheduler = RefreshScheduler(replace(config, schedule="every day at two"), FakeRun())

        with pytest.raises(SchedulerRegistrationError) as exc_info:
            scheduler.start()

        assert exc_info.value.is_fatal
        assert exc_info.value.schedule == "every day at two"
        assert not scheduler.is_running
        assert scheduler.runs_started == 0

    @pytest.mark.asyncio
    async def test_invalid_timezone_is_fatal(self, config):
        scheduler = RefreshScheduler(replace(config, timezone="Mars/Olympus_Mons"), FakeRun())

        with pytest.raises(SchedulerRegistrationError):
            scheduler.start()

    @pytest.mark.asyncio
    async def test_start_registers_job_and_runs_once(self, config):
        run = FakeRun()
        scheduler = RefreshScheduler(config, run)

        task = scheduler.start()
        try:
            assert scheduler.is_running
            assert scheduler._scheduler.get_job(JOB_ID) is not None
            await asyncio.wait_for(run.started.wait(), timeout=1)
            assert run.calls == 1
            assert scheduler.current_task is task

            run.release.set()
            result = await asyncio.wait_for(task, timeout=1)
            assert result.status == RunStatus.COMPLETED
            assert scheduler.last_result is result
        finally:
            await scheduler.shutdown()


class TestOverlap:

    @pytest.mark.asyncio
    async def test_trigger_while_running_is_skipped(self, config):
        run = FakeRun()
        scheduler = RefreshScheduler(config, run)

        scheduler.start()
        try:
            await asyncio.wait_for(run.started.wait(), timeout=1)

            assert scheduler.trigger(reason="schedule") is None
            assert scheduler.runs_skipped == 1
            assert scheduler.runs_started == 1

            run.release.set()
            await asyncio.wait_for(scheduler.current_task, timeout=1)

            run.release.clear()
            next_task = scheduler.trigger(reason="schedule")
            assert next_task is not None
            assert scheduler.runs_started == 2
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_trigger_before_start_is_ignored(self, config):
        scheduler = RefreshScheduler(config, FakeRun())
        assert scheduler.trigger() is None


class TestShutdown:

    @pytest.mark.asyncio
    async def test_shutdown_drains_cooperative_run(self, config):
        run = FakeRun(honour_cancel=True)
        scheduler = RefreshScheduler(config, run)

        task = scheduler.start()
        await asyncio.wait_for(run.started.wait(), timeout=1)
        await scheduler.shutdown()

        assert task.done()
        assert not task.cancelled()
        assert scheduler.last_result.status == RunStatus.CANCELED
        assert scheduler.cancel_event.is_set()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_shutdown_cancels_run_after_drain_timeout(self, config):
        run = FakeRun(honour_cancel=False)
        scheduler = RefreshScheduler(config, run)

        task = scheduler.start()
        await asyncio.wait_for(run.started.wait(), timeout=1)
        await asyncio.wait_for(scheduler.shutdown(), timeout=2)

        assert task.cancelled()
        assert scheduler.last_result is None

    @pytest.mark.asyncio
    async def test_no_triggers_after_shutdown(self, config):
        run = FakeRun()
        scheduler = RefreshScheduler(config, run)

        scheduler.start()
        await scheduler.shutdown()

        assert scheduler.trigger(reason="schedule") is None
        assert run.calls <= 1

    @pytest.mark.asyncio
    async def test_crashing_run_is_contained(self, config):
        async def crashing_run(cancel_event):
            raise RuntimeError("boom")

        scheduler = RefreshScheduler(config, crashing_run)

        task = scheduler.start()
        assert await asyncio.wait_for(task, timeout=1) is None
        assert scheduler.last_result is None

        await scheduler.shutdown()
