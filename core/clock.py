"""
Core Module - System Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a testable clock abstraction for the refresh pipeline.

- Components that need "now" receive a clock explicitly
- Enables deterministic testing
- Ensures consistent UTC timestamps for freshness markers
- Offers a cached clock refreshed by a single owner task

============================================================
DESIGN PRINCIPLES
============================================================
- No process-wide clock instance; the application owns one
- UTC only - no timezone conversions in business logic
- Mockable for testing
- Readers never mutate a clock they were given

============================================================
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Generator, Optional


logger = logging.getLogger(__name__)


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for a clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        return self.now().timestamp()

    def today(self) -> date:
        """Get current UTC date."""
        return self.now().date()


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """
    Production clock using actual system time.

    All times are in UTC.
    """

    def now(self) -> datetime:
        """Get current UTC datetime."""
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        return time.time()


# ============================================================
# CACHED CLOCK
# ============================================================

class CachedClock(ClockProtocol):
    """
    Clock whose value is refreshed by one background task.

    Lookups return the last cached value, which is never in the future
    and at most one granularity behind the real time. Only the owner
    calls start() and stop(); everything else just reads now().
    """

    def __init__(
        self,
        granularity_seconds: float = 0.5,
        source: Optional[ClockProtocol] = None,
    ):
        """
        Initialize cached clock.

        Args:
            granularity_seconds: Refresh interval of the cached value
            source: Clock to sample (defaults to SystemClock)
        """
        if granularity_seconds <= 0:
            raise ValueError("granularity_seconds must be positive")

        self._granularity = granularity_seconds
        self._source = source or SystemClock()
        self._now = self._source.now()
        self._task: Optional[asyncio.Task] = None

    @property
    def granularity_seconds(self) -> float:
        """Refresh interval in seconds."""
        return self._granularity

    @property
    def is_running(self) -> bool:
        """Check if the refresh task is alive."""
        return self._task is not None and not self._task.done()

    def now(self) -> datetime:
        """Get the cached UTC datetime."""
        return self._now

    def refresh(self) -> None:
        """Sample the source clock once."""
        self._now = self._source.now()

    def start(self) -> None:
        """Start the refresh task on the running event loop."""
        if self.is_running:
            return
        self.refresh()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Cached clock started | granularity={self._granularity}s")

    async def stop(self) -> None:
        """Stop the refresh task. A stopped clock keeps its last value."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Cached clock stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._granularity)
            self.refresh()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        self._time = initial_time or datetime.now(timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        """Get current (mocked) datetime."""
        with self._lock:
            return self._time

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            if new_time.tzinfo is None:
                new_time = new_time.replace(tzinfo=timezone.utc)
            self._time = new_time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)

    @contextmanager
    def freeze(self, at_time: Optional[datetime] = None) -> Generator[None, None, None]:
        """
        Context manager to freeze time.

        Args:
            at_time: Time to freeze at (defaults to current)
        """
        with self._lock:
            original_time = self._time
            if at_time:
                if at_time.tzinfo is None:
                    at_time = at_time.replace(tzinfo=timezone.utc)
                self._time = at_time

        try:
            yield
        finally:
            with self._lock:
                self._time = original_time


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "CachedClock",
    "MockClock",
]
