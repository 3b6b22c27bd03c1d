"""
Orchestrator - Refresh Scheduler.

============================================================
RESPONSIBILITY
============================================================
Triggers the stock refresh run on a cron schedule.

- Registers the recurring job (failure is fatal)
- Runs once immediately at startup
- Never lets two runs overlap
- Drains the in-flight run on shutdown

============================================================
LIFECYCLE
============================================================
start()     -> register cron job, start scheduler, trigger run
trigger()   -> start a run unless one is in flight
shutdown()  -> stop triggers, set cancel event, wait up to
               drain_timeout_seconds, then cancel the run

============================================================
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.exceptions import SchedulerRegistrationError
from data_ingestion.types import RefreshConfig, RefreshRunResult


JOB_ID = "upsert_stock_information"

RunCallable = Callable[[asyncio.Event], Awaitable[RefreshRunResult]]


class RefreshScheduler:
    """
    Cron-driven trigger for the refresh run.

    One cancel event per scheduler; it is set once, on shutdown.
    """

    def __init__(self, config: RefreshConfig, run: RunCallable) -> None:
        """
        Initialize the scheduler.

        Args:
            config: Refresh configuration (schedule, timezone, drain timeout)
            run: Coroutine function executing one run, given the cancel event
        """
        self._config = config
        self._run = run
        self._logger = logging.getLogger("orchestrator.scheduler")

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._cancel_event = asyncio.Event()
        self._current_task: Optional[asyncio.Task] = None
        self._accepting = False
        self._last_result: Optional[RefreshRunResult] = None
        self._runs_started = 0
        self._runs_skipped = 0

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel_event

    @property
    def is_running(self) -> bool:
        """Check if the scheduler accepts triggers."""
        return self._accepting

    @property
    def run_in_flight(self) -> bool:
        return self._current_task is not None and not self._current_task.done()

    @property
    def current_task(self) -> Optional[asyncio.Task]:
        return self._current_task

    @property
    def last_result(self) -> Optional[RefreshRunResult]:
        return self._last_result

    @property
    def runs_started(self) -> int:
        return self._runs_started

    @property
    def runs_skipped(self) -> int:
        return self._runs_skipped

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def start(self) -> Optional[asyncio.Task]:
        """
        Register the recurring job and trigger the startup run.

        Must be called from the running event loop.

        Returns:
            Task of the startup run

        Raises:
            SchedulerRegistrationError: If the schedule cannot be registered
        """
        if self._accepting:
            self._logger.warning("Scheduler already running")
            return self._current_task

        schedule = self._config.schedule
        try:
            trigger = CronTrigger.from_crontab(schedule, timezone=self._config.timezone)
            scheduler = AsyncIOScheduler(timezone=self._config.timezone)
            scheduler.add_job(
                self._on_tick,
                trigger,
                id=JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
        except Exception as e:
            self._logger.critical(f"Failed to register cron schedule | schedule={schedule!r} | {e}")
            raise SchedulerRegistrationError(
                message=f"Failed to register cron schedule {schedule!r}: {e}",
                schedule=schedule,
                cause=e,
            ) from e

        self._scheduler = scheduler
        self._accepting = True
        self._logger.info(
            f"Cron job registered | job={JOB_ID} | schedule={schedule!r} | timezone={self._config.timezone}"
        )

        return self.trigger(reason="startup")

    async def _on_tick(self) -> None:
        self.trigger(reason="schedule")

    def trigger(self, reason: str = "manual") -> Optional[asyncio.Task]:
        """
        Start a run unless one is in flight or shutdown has begun.

        Returns:
            Task of the new run, or None if skipped
        """
        if not self._accepting or self._cancel_event.is_set():
            self._logger.info(f"Trigger ignored, scheduler not accepting | reason={reason}")
            return None

        if self.run_in_flight:
            self._runs_skipped += 1
            self._logger.warning(f"Previous run still in flight, skipping trigger | reason={reason}")
            return None

        self._runs_started += 1
        self._logger.info(f"Triggering refresh run | reason={reason}")
        self._current_task = asyncio.get_running_loop().create_task(self._execute())
        return self._current_task

    async def _execute(self) -> Optional[RefreshRunResult]:
        try:
            result = await self._run(self._cancel_event)
        except asyncio.CancelledError:
            self._logger.warning("Refresh run task cancelled")
            raise
        except Exception as e:
            self._logger.error(f"Refresh run crashed: {e}", exc_info=True)
            return None

        self._last_result = result
        return result

    async def shutdown(self) -> None:
        """
        Stop accepting triggers and drain the in-flight run.

        The run sees the cancel event first; if it has not finished
        within drain_timeout_seconds it is cancelled.
        """
        self._logger.info("=== SCHEDULER SHUTDOWN SEQUENCE ===")
        self._accepting = False

        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._cancel_event.set()

        task = self._current_task
        if task is not None and not task.done():
            timeout = self._config.drain_timeout_seconds
            self._logger.info(f"Waiting for in-flight run | drain_timeout={timeout}s")
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                self._logger.warning("In-flight run did not drain in time, cancelling")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._logger.info("=== SCHEDULER SHUTDOWN COMPLETE ===")


__all__ = [
    "JOB_ID",
    "RefreshScheduler",
]
