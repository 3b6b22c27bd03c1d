"""
Data Ingestion - Stock Refresh Service.

============================================================
RESPONSIBILITY
============================================================
Runs one refresh pass over every stale instrument.

- Loads the instrument list from the repository
- Per instrument: fetch -> normalize -> merge -> persist
- Enforces a minimum interval between instruments
- Honors a run-scoped cancel event

============================================================
DESIGN PRINCIPLES
============================================================
- Instruments are processed strictly one after another
- One instrument's failure never stops the run
- Every handled failure is reported once, through the exception sink
- The overview upsert is always attempted
- Cancellation is checked before each instrument and while waiting

============================================================
WORKFLOW
============================================================
1. Select stale instruments (empty -> completed, no side effects)
2. For each instrument:
   a. Fetch earnings and equities concurrently
   b. Earnings: decode, upsert quarterly history, build seed
   c. Seed missing -> empty record for the ticker
   d. Equities: decode, merge onto the record
   e. Upsert overview metrics
   f. Wait out the rest of the minimum interval
3. Log run summary

============================================================
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from core.clock import ClockProtocol, SystemClock
from core.exceptions import NormalizationError, PersistenceError
from data_ingestion.collectors.dual_source import DualFetchResult, DualSourceFetcher
from data_ingestion.normalizers.earnings_normalizer import (
    decode_earnings,
    to_overview_seed,
    to_quarterly_history_records,
)
from data_ingestion.normalizers.equities_normalizer import decode_equities, to_equities_fields
from data_ingestion.reconciliation import merge_overview
from data_ingestion.types import (
    InstrumentOutcome,
    InstrumentStage,
    OverviewMetricsRecord,
    RefreshConfig,
    RefreshRunResult,
    RunStatus,
    TrackedInstrument,
)
from database.repository import StockRepository
from monitoring.exception_sink import ExceptionSink, LoggingExceptionSink


JOB_NAME = "upsertStockInformation"
MODULE_TAG = "ingestion"


class StockRefreshService:
    """
    Rate-limited batch processor for stock fundamentals.

    ============================================================
    STATES
    ============================================================
    Run:        IDLE -> RUNNING -> COMPLETED | CANCELED
    Instrument: FETCHING -> NORMALIZING -> MERGING -> PERSISTING -> WAITING
    ============================================================
    """

    def __init__(
        self,
        config: RefreshConfig,
        fetcher: DualSourceFetcher,
        repository: StockRepository,
        sink: Optional[ExceptionSink] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            config: Refresh configuration
            fetcher: Dual-source fetcher sharing the HTTP session
            repository: Persistence gateway
            sink: Exception sink for handled failures
            clock: Clock for run timestamps
        """
        self._config = config
        self._fetcher = fetcher
        self._repository = repository
        self._sink = sink or LoggingExceptionSink()
        self._clock = clock or SystemClock()
        self._logger = logging.getLogger("ingestion.refresh")

        self._status = RunStatus.IDLE
        self._stage: Optional[InstrumentStage] = None
        self._current_ticker: Optional[str] = None

    # =========================================================
    # PROPERTIES
    # =========================================================

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def current_stage(self) -> Optional[InstrumentStage]:
        return self._stage

    @property
    def current_ticker(self) -> Optional[str]:
        return self._current_ticker

    # =========================================================
    # RUN
    # =========================================================

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> RefreshRunResult:
        """
        Execute one refresh pass.

        Args:
            cancel_event: Run-scoped cancel signal

        Returns:
            RefreshRunResult with status COMPLETED or CANCELED
        """
        cancel_event = cancel_event or asyncio.Event()
        result = RefreshRunResult(status=RunStatus.RUNNING, started_at=self._clock.now())
        self._status = RunStatus.RUNNING

        self._logger.info(f"=== Refresh run started | job={JOB_NAME} | run_id={result.run_id} ===")

        try:
            instruments = await self._load_instruments(result)
            if not instruments:
                return self._finish(result, RunStatus.COMPLETED)

            result.instruments_total = len(instruments)
            status = await self._process_all(instruments, cancel_event, result)
            return self._finish(result, status)
        except asyncio.CancelledError:
            self._finish(result, RunStatus.CANCELED)
            raise
        finally:
            self._stage = None
            self._current_ticker = None

    async def _load_instruments(self, result: RefreshRunResult) -> List[TrackedInstrument]:
        try:
            instruments = await asyncio.to_thread(
                self._repository.select_stale_instruments,
                self._config.staleness,
            )
        except PersistenceError as e:
            result.errors.append(f"select_stale_instruments: {e}")
            self._report(e, "select_instruments", {}, level=logging.ERROR,
                         message="Failed to load target stocks")
            return []

        if not instruments:
            self._logger.warning(f"No target stocks to refresh | job={JOB_NAME}")
        else:
            self._logger.info(f"Loaded {len(instruments)} target stock(s) | job={JOB_NAME}")
        return list(instruments)

    async def _process_all(
        self,
        instruments: List[TrackedInstrument],
        cancel_event: asyncio.Event,
        result: RefreshRunResult,
    ) -> RunStatus:
        loop = asyncio.get_running_loop()
        interval = self._config.min_instrument_interval_seconds
        last_index = len(instruments) - 1

        for index, instrument in enumerate(instruments):
            if cancel_event.is_set():
                self._logger.info(f"Refresh run canceled before {instrument.ticker} | job={JOB_NAME}")
                return RunStatus.CANCELED

            started = loop.time()
            outcome = await self._process_guarded(instrument, cancel_event)
            if outcome.canceled:
                self._logger.info(f"Refresh run canceled while fetching {instrument.ticker} | job={JOB_NAME}")
                return RunStatus.CANCELED
            result.outcomes.append(outcome)

            if index == last_index:
                break

            self._stage = InstrumentStage.WAITING
            remaining = interval - (loop.time() - started)
            if await self._wait_or_cancel(cancel_event, remaining):
                self._logger.info(f"Refresh run canceled while rate limiting | job={JOB_NAME}")
                return RunStatus.CANCELED

        return RunStatus.COMPLETED

    async def _wait_or_cancel(self, cancel_event: asyncio.Event, seconds: float) -> bool:
        """Sleep up to seconds. Returns True if the cancel event fired."""
        if cancel_event.is_set():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _finish(self, result: RefreshRunResult, status: RunStatus) -> RefreshRunResult:
        result.mark_complete(status, self._clock.now())
        self._status = status

        self._logger.info(
            f"=== Refresh run {status.value} | job={JOB_NAME} | "
            f"processed={result.instruments_processed}/{result.instruments_total} | "
            f"failed={result.instruments_failed} | duration={result.duration_seconds:.2f}s ===",
            extra={"context": result.to_dict()},
        )
        return result

    # =========================================================
    # PER INSTRUMENT
    # =========================================================

    async def _process_guarded(
        self,
        instrument: TrackedInstrument,
        cancel_event: asyncio.Event,
    ) -> InstrumentOutcome:
        self._current_ticker = instrument.ticker
        outcome = InstrumentOutcome(ticker=instrument.ticker)
        try:
            await self.process_instrument(instrument, outcome, cancel_event)
        except Exception as e:
            outcome.add_error("process_instrument", e)
            self._report(e, "process_instrument", {"ticker": instrument.ticker},
                         level=logging.ERROR, message="Unexpected failure processing stock")
        return outcome

    async def process_instrument(
        self,
        instrument: TrackedInstrument,
        outcome: Optional[InstrumentOutcome] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> InstrumentOutcome:
        """
        Fetch, normalize, merge and persist one instrument.

        Handled failures are recorded on the outcome, never raised.
        If the cancel event fires during the fetch nothing is persisted
        and the outcome is marked canceled.
        """
        outcome = outcome or InstrumentOutcome(ticker=instrument.ticker)
        ticker = instrument.ticker

        self._stage = InstrumentStage.FETCHING
        fetched: Optional[DualFetchResult] = await self._fetcher.fetch(instrument, cancel_event)
        if fetched is None:
            outcome.canceled = True
            return outcome

        overview = await self._apply_earnings(instrument, fetched, outcome)
        if overview is None:
            overview = OverviewMetricsRecord(symbol=ticker)

        self._apply_equities(instrument, fetched, overview, outcome)
        if not overview.symbol:
            overview.symbol = ticker

        self._stage = InstrumentStage.PERSISTING
        try:
            await asyncio.to_thread(
                self._repository.upsert_overview_metrics, overview, ticker=ticker,
            )
        except PersistenceError as e:
            outcome.add_error("upsert_overview_metrics", e)
            self._report(e, "upsert_overview_metrics",
                         {"ticker": ticker, "symbol": overview.symbol},
                         level=logging.ERROR, message="Failed to upsert overview metrics")
            return outcome

        outcome.overview_persisted = True
        self._logger.info(
            f"Overview metrics upserted | job={JOB_NAME} | ticker={ticker} | "
            f"symbol={overview.symbol} | overview_from_earnings={outcome.overview_from_earnings}"
        )
        return outcome

    async def _apply_earnings(
        self,
        instrument: TrackedInstrument,
        fetched: DualFetchResult,
        outcome: InstrumentOutcome,
    ) -> Optional[OverviewMetricsRecord]:
        """Earnings leg: history upsert plus overview seed. Returns the seed, or None."""
        ticker = instrument.ticker
        leg = fetched.earnings

        if not leg.ok:
            outcome.add_error("fetch_earnings", leg.error)
            self._report(leg.error, "fetch_earnings", {"ticker": ticker}, level=logging.WARNING,
                         message="Failed to fetch earnings data; continue with equities data")
            return None

        self._stage = InstrumentStage.NORMALIZING
        try:
            earnings = decode_earnings(leg.response.body)
        except NormalizationError as e:
            outcome.add_error("decode_earnings", e)
            self._report(e, "decode_earnings", {"ticker": ticker},
                         message="Failed to decode earnings data")
            return None

        try:
            records = to_quarterly_history_records(earnings, fallback_symbol=ticker)
        except NormalizationError as e:
            outcome.add_error("parse_quarterly_history", e)
            self._report(e, "parse_quarterly_history", {"ticker": ticker},
                         message="Failed to parse quarterly history records")
        else:
            outcome.history_records = len(records)
            self._stage = InstrumentStage.PERSISTING
            try:
                await asyncio.to_thread(
                    self._repository.upsert_quarterly_history, records, ticker=ticker,
                )
            except PersistenceError as e:
                outcome.add_error("upsert_quarterly_history", e)
                self._report(e, "upsert_quarterly_history",
                             {"ticker": ticker, "quarterly_record_count": len(records)},
                             message="Failed to upsert quarterly history records")
            else:
                outcome.history_persisted = True
                self._logger.info(
                    f"Quarterly history upserted | job={JOB_NAME} | ticker={ticker} | "
                    f"symbol={earnings.symbol} | quarterly_record_count={len(records)}"
                )

        self._stage = InstrumentStage.NORMALIZING
        try:
            seed = to_overview_seed(earnings, fallback_symbol=ticker)
        except NormalizationError as e:
            outcome.add_error("parse_overview_from_earnings", e)
            self._report(e, "parse_overview_from_earnings", {"ticker": ticker},
                         message="Failed to parse overview metrics from earnings data")
            return None

        outcome.overview_from_earnings = True
        return seed

    def _apply_equities(
        self,
        instrument: TrackedInstrument,
        fetched: DualFetchResult,
        overview: OverviewMetricsRecord,
        outcome: InstrumentOutcome,
    ) -> None:
        """Equities leg: decode and merge onto the overview record."""
        ticker = instrument.ticker
        leg = fetched.equities

        if not leg.ok:
            outcome.add_error("fetch_equities", leg.error)
            self._report(leg.error, "fetch_equities", {"ticker": ticker},
                         message="Failed to fetch overview data")
            return

        self._stage = InstrumentStage.NORMALIZING
        try:
            equities = decode_equities(leg.response.body)
        except NormalizationError as e:
            outcome.add_error("decode_equities", e)
            self._report(e, "decode_equities", {"ticker": ticker},
                         message="Failed to decode overview data")
            return

        self._stage = InstrumentStage.MERGING
        try:
            merge_overview(overview, to_equities_fields(equities))
        except NormalizationError as e:
            outcome.add_error("merge_overview_from_equities", e)
            self._report(e, "merge_overview_from_equities", {"ticker": ticker},
                         message="Failed to merge overview metrics from equities data")

    # =========================================================
    # REPORTING
    # =========================================================

    def _report(
        self,
        error: BaseException,
        action: str,
        context: Dict[str, Any],
        level: int = logging.ERROR,
        message: str = "",
    ) -> None:
        self._sink.capture(
            error,
            tags={"module": MODULE_TAG, "job": JOB_NAME, "action": action},
            context=context,
            level=level,
            message=message or action,
        )


__all__ = [
    "JOB_NAME",
    "MODULE_TAG",
    "StockRefreshService",
]
