"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Application lifecycle for the stock refresh service.

- Single entrypoint wiring every component
- Controls startup, shutdown and execution flow
- Owns the cached clock, HTTP client and database engine
- Handles signals (SIGINT, SIGTERM)

============================================================
ARCHITECTURAL POSITION
============================================================
- No business logic
- ONLY coordinates execution

============================================================
"""

import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine

from core.clock import CachedClock
from core.exceptions import ConfigurationError
from data_ingestion.collectors.base import UpstreamClient
from data_ingestion.collectors.dual_source import DualSourceFetcher
from data_ingestion.refresh_service import StockRefreshService
from data_ingestion.types import RefreshConfig, RefreshRunResult
from database.engine import (
    create_database_engine,
    create_session_factory,
    initialize_database,
)
from database.repository import StockRepository
from monitoring.exception_sink import ExceptionSink, LoggingExceptionSink
from orchestrator.scheduler import RefreshScheduler


# ============================================================
# LOGGING SETUP
# ============================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def __init__(self, correlation_id: Optional[str] = None) -> None:
        super().__init__()
        self._correlation_id = correlation_id or ""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": self._correlation_id,
        }
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up process logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing

    Returns:
        Orchestrator logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter(correlation_id)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # apscheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(max(log_level, logging.WARNING))

    return logging.getLogger("orchestrator")


# ============================================================
# APPLICATION
# ============================================================

class RefreshApplication:
    """
    Wires and runs the refresh service.

    Owns one CachedClock, one UpstreamClient (HTTP pool) and one
    database engine for the life of the process.
    """

    def __init__(
        self,
        config: RefreshConfig,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        sink: Optional[ExceptionSink] = None,
        client: Optional[UpstreamClient] = None,
    ):
        """
        Initialize the application.

        Args:
            config: Refresh configuration
            database_url: Explicit database URL (defaults to environment)
            engine: Pre-built engine, mainly for tests
            sink: Exception sink (defaults to logging)
            client: Upstream client, mainly for tests

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        errors = config.validate()
        if errors:
            raise ConfigurationError(
                message=f"Invalid configuration: {', '.join(errors)}",
                context={"errors": errors},
            )

        self._config = config
        self._logger = logging.getLogger("orchestrator")

        self._clock = CachedClock(granularity_seconds=config.clock_granularity_seconds)
        self._engine = engine or create_database_engine(database_url)
        self._client = client or UpstreamClient(config)
        self._sink = sink or LoggingExceptionSink()

        self._repository = StockRepository(
            session_factory=create_session_factory(self._engine),
            clock=self._clock,
        )
        self._service = StockRefreshService(
            config=config,
            fetcher=DualSourceFetcher(self._client),
            repository=self._repository,
            sink=self._sink,
            clock=self._clock,
        )
        self._scheduler = RefreshScheduler(config, self._service.run)

        self._started = False
        self._stop_event = asyncio.Event()
        self._signals_installed = False

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def config(self) -> RefreshConfig:
        return self._config

    @property
    def service(self) -> StockRefreshService:
        return self._service

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    @property
    def repository(self) -> StockRepository:
        return self._repository

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def start(self) -> None:
        """Start owned resources and verify the database."""
        if self._started:
            return

        self._logger.info("=== APPLICATION STARTUP SEQUENCE ===")
        self._install_signal_handlers()
        self._clock.start()
        await asyncio.to_thread(initialize_database, self._engine)
        self._started = True
        self._logger.info("=== APPLICATION STARTUP COMPLETE ===")

    async def stop(self) -> None:
        """Drain the scheduler and release owned resources."""
        self._logger.info("=== APPLICATION SHUTDOWN SEQUENCE ===")

        await self._scheduler.shutdown()
        await self._client.close()
        await self._clock.stop()
        self._engine.dispose()
        self._restore_signal_handlers()
        self._started = False

        self._logger.info("=== APPLICATION SHUTDOWN COMPLETE ===")

    def request_shutdown(self) -> None:
        """Ask run_forever to return. Safe to call more than once."""
        if not self._stop_event.is_set():
            self._logger.info("Shutdown requested")
            self._stop_event.set()
            # Let an in-flight run see the cancel signal right away
            self._scheduler.cancel_event.set()

    async def run_forever(self) -> None:
        """
        Run on schedule until a shutdown signal.

        Raises:
            SchedulerRegistrationError: If the schedule cannot be registered
        """
        await self.start()
        try:
            self._scheduler.start()
            await self._stop_event.wait()
        finally:
            await self.stop()

    async def run_once(self) -> RefreshRunResult:
        """Execute a single refresh run and return its result."""
        await self.start()
        try:
            return await self._service.run(self._scheduler.cancel_event)
        finally:
            await self.stop()

    # --------------------------------------------------------
    # Signals
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, self._signal_handler)
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, lambda s=sig: self._on_signal(s))
            except (NotImplementedError, RuntimeError):
                self._logger.debug(f"Signal handler not installed for {sig.name}")
                continue
            self._signals_installed = True

    def _restore_signal_handlers(self) -> None:
        """Remove installed signal handlers."""
        if sys.platform == "win32" or not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        self._signals_installed = False

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows)."""
        self._logger.info(f"Received signal {signum}")
        asyncio.get_event_loop().call_soon_threadsafe(self.request_shutdown)

    def _on_signal(self, sig: signal.Signals) -> None:
        self._logger.info(f"Received signal {sig.name}")
        self.request_shutdown()

    def get_status(self) -> Dict[str, Any]:
        """Get application status."""
        last = self._scheduler.last_result
        return {
            "started": self._started,
            "scheduler_running": self._scheduler.is_running,
            "run_in_flight": self._scheduler.run_in_flight,
            "run_status": self._service.status.value,
            "current_ticker": self._service.current_ticker,
            "runs_started": self._scheduler.runs_started,
            "runs_skipped": self._scheduler.runs_skipped,
            "last_run": last.to_dict() if last else None,
        }


__all__ = [
    "JsonFormatter",
    "setup_logging",
    "RefreshApplication",
]
