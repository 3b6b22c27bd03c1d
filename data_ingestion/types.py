"""
Data Ingestion - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the stock refresh pipeline.

- Configuration dataclass (environment backed)
- Domain records (tracked instrument, history, overview)
- Raw upstream response wrapper
- Run and per-instrument result types

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable data structures where possible
- Clear typing for all fields
- No business logic
- Serializable for logging

============================================================
"""

import os
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4


# =============================================================
# ENUMS
# =============================================================

class UpstreamSource(str, Enum):
    """Identifiers for the two upstream endpoints."""
    EARNINGS = "earnings"
    EQUITIES = "equities"


class RunStatus(str, Enum):
    """Lifecycle of a single refresh run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELED = "canceled"


class InstrumentStage(str, Enum):
    """Pipeline stage of the instrument being processed."""
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    MERGING = "merging"
    PERSISTING = "persisting"
    WAITING = "waiting"


# =============================================================
# CONFIGURATION
# =============================================================

STOCK_DATASOURCE = "https://api.datasectors.com/api/stocks/v2"


@dataclass(frozen=True)
class RefreshConfig:
    """Configuration for the stock refresh pipeline."""

    # Upstream
    base_url: str = STOCK_DATASOURCE
    """Base URL; earnings and equities paths are appended."""

    market_code: str = "id-id"
    """Fixed market query parameter."""

    api_key_header: str = "X-API-Key"
    """Header carrying the per-instrument credential."""

    request_timeout_seconds: float = 30.0
    """Independent timeout for each upstream call."""

    # Connection pool
    max_connections: int = 20
    max_connections_per_host: int = 10
    keepalive_timeout_seconds: float = 90.0

    # Rate limiting
    min_instrument_interval_seconds: float = 2.0
    """Minimum wall time between the start of consecutive instruments."""

    # Selection
    staleness_days: int = 1
    """Instruments refreshed within this window are skipped."""

    # Scheduling
    schedule: str = "0 2 * * *"
    """Crontab expression for the recurring run."""

    timezone: str = "UTC"
    """Timezone the schedule is evaluated in."""

    drain_timeout_seconds: float = 30.0
    """How long shutdown waits for an in-flight run."""

    clock_granularity_seconds: float = 0.5
    """Refresh interval of the cached clock."""

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def staleness(self) -> timedelta:
        """Staleness window as timedelta."""
        return timedelta(days=self.staleness_days)

    def endpoint(self, source: UpstreamSource) -> str:
        """Full URL of an upstream endpoint."""
        return f"{self.base_url.rstrip('/')}/{source.value}"

    @classmethod
    def from_env(cls) -> "RefreshConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("STOCK_DATASOURCE_URL", STOCK_DATASOURCE),
            market_code=os.getenv("STOCK_MARKET_CODE", "id-id"),
            api_key_header=os.getenv("STOCK_API_KEY_HEADER", "X-API-Key"),
            request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30")),
            min_instrument_interval_seconds=float(os.getenv("MIN_INSTRUMENT_INTERVAL_SECONDS", "2")),
            staleness_days=int(os.getenv("STALENESS_DAYS", "1")),
            schedule=os.getenv("REFRESH_SCHEDULE", "0 2 * * *"),
            timezone=os.getenv("REFRESH_TIMEZONE", "UTC"),
            drain_timeout_seconds=float(os.getenv("DRAIN_TIMEOUT_SECONDS", "30")),
            clock_granularity_seconds=float(os.getenv("CLOCK_GRANULARITY_SECONDS", "0.5")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.base_url.startswith(("http://", "https://")):
            errors.append(f"base_url must be an http(s) URL, got {self.base_url!r}")
        if not self.market_code:
            errors.append("market_code must not be empty")
        if not self.api_key_header:
            errors.append("api_key_header must not be empty")
        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")
        if self.min_instrument_interval_seconds < 0:
            errors.append("min_instrument_interval_seconds must not be negative")
        if self.staleness_days < 0:
            errors.append("staleness_days must not be negative")
        if not self.schedule.strip():
            errors.append("schedule must not be empty")
        if self.drain_timeout_seconds <= 0:
            errors.append("drain_timeout_seconds must be positive")
        if self.clock_granularity_seconds <= 0:
            errors.append("clock_granularity_seconds must be positive")
        if self.log_format not in ("text", "json"):
            errors.append(f"log_format must be 'text' or 'json', got {self.log_format!r}")

        return errors


# =============================================================
# DOMAIN RECORDS
# =============================================================

@dataclass(frozen=True)
class TrackedInstrument:
    """One instrument eligible for refresh."""
    ticker: str
    api_key: str

    def __repr__(self) -> str:
        # Never print the credential
        return f"TrackedInstrument(ticker={self.ticker!r})"


@dataclass(frozen=True)
class RawSourceResponse:
    """Raw payload of one upstream call."""
    source: UpstreamSource
    status_code: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    success: Optional[bool] = None

    @property
    def is_ok(self) -> bool:
        """Check for a 2xx status."""
        return 200 <= self.status_code < 300


@dataclass
class QuarterlyHistoryRecord:
    """One fiscal period's earnings facts for one instrument."""
    symbol: str
    period_code: str
    sec_id: Optional[str] = None
    instrument_id: Optional[str] = None
    eps_actual: Optional[float] = None
    eps_surprise: Optional[float] = None
    eps_surprise_percent: Optional[float] = None
    revenue_actual: Optional[float] = None
    revenue_surprise: Optional[float] = None
    revenue_surprise_percent: Optional[float] = None
    forecast_source: Optional[str] = None
    eps_forecast: Optional[float] = None
    revenue_forecast: Optional[float] = None
    earning_release_date: Optional[datetime] = None
    eps_gaap_consensus_median: Optional[float] = None
    eps_normalized_consensus_median: Optional[float] = None
    ciq_fiscal_period_type: Optional[str] = None
    calendar_period_type: Optional[str] = None
    calendar_period_start_date: Optional[datetime] = None
    calendar_period_end_date: Optional[datetime] = None
    primary_eps: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Column mapping for persistence."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class OverviewMetricsRecord:
    """
    Current-state denormalized metrics for one instrument.

    Assembled progressively: an optional earnings-derived seed, then the
    equities overlay. Every field except symbol is nullable.
    """
    symbol: str = ""

    # Identity
    sec_id: Optional[str] = None
    instrument_id: Optional[str] = None
    market: Optional[str] = None
    currency: Optional[str] = None

    # Earnings seed
    market_cap: Optional[float] = None
    last_actual_period_code: Optional[str] = None
    last_actual_quarter_eps: Optional[float] = None
    last_actual_quarter_revenue: Optional[float] = None
    next_expected_report_date: Optional[datetime] = None
    source_time_last_updated: Optional[datetime] = None

    # Valuation / key metrics
    enterprise_value: Optional[float] = None
    beta: Optional[float] = None
    eps: Optional[float] = None
    book_value_per_share: Optional[float] = None
    latest_revenue_per_share: Optional[float] = None
    profitability: Optional[str] = None
    stock_growth: Optional[float] = None
    latest_revenue: Optional[float] = None
    latest_income: Optional[float] = None
    latest_net_profit_margin: Optional[float] = None
    current_ratio: Optional[float] = None
    debt_to_equity_ratio: Optional[float] = None
    forward_price_to_eps: Optional[float] = None
    forward_dividend_yield: Optional[float] = None
    payout_ratio: Optional[float] = None
    price_to_book_ratio: Optional[float] = None
    return_on_assets: Optional[float] = None
    return_on_capital: Optional[float] = None
    return_on_equity: Optional[float] = None

    # Company metrics
    pe_5y_high_ratio: Optional[float] = None
    pe_5y_low_ratio: Optional[float] = None
    revenue_ytd_ytd: Optional[float] = None
    revenue_qq_last_year_growth_rate: Optional[float] = None
    net_income_ytd_ytd_growth_rate: Optional[float] = None
    net_income_qq_last_year_growth_rate: Optional[float] = None
    revenue_5y_avg_growth_rate: Optional[float] = None
    net_income_5y_avg_growth_rate: Optional[float] = None
    dividend_5y_avg_growth_rate: Optional[float] = None
    dividend_yield: Optional[float] = None
    debt_asset_ratio: Optional[float] = None
    leverage_ratio: Optional[float] = None
    interest_coverage: Optional[float] = None
    price_cash_flow_ratio: Optional[float] = None
    revenue_3y_avg: Optional[float] = None
    trailing_annual_dividend_yield: Optional[float] = None
    price_to_sales_ratio: Optional[float] = None
    book_value_share_ratio: Optional[float] = None
    operating_cash_flow: Optional[float] = None
    quick_ratio: Optional[float] = None
    current: Optional[float] = None
    diluted_eps_3y_growth: Optional[float] = None
    pe_growth_ratio: Optional[float] = None
    gross_margin: Optional[float] = None
    pretax_margin: Optional[float] = None
    net_profit_margin: Optional[float] = None
    average_gross_margin_5y: Optional[float] = None
    average_pretax_margin_5y: Optional[float] = None
    average_net_profit_margin_5y: Optional[float] = None
    operating_margin: Optional[float] = None
    net_margin_percent: Optional[float] = None
    return_on_equity_5y_avg: Optional[float] = None
    return_on_assets_5y_avg: Optional[float] = None
    return_on_capital_5y_avg: Optional[float] = None
    income_employee: Optional[float] = None
    revenue_employee: Optional[float] = None
    asset_turnover: Optional[float] = None
    inventory_turnover: Optional[float] = None
    receivable_turnover: Optional[float] = None
    roa_ttm: Optional[float] = None

    # Share statistics
    average_dividend_yield_5y: Optional[float] = None
    last_split_factor: Optional[str] = None
    ex_dividend_amount: Optional[float] = None
    shares_outstanding: Optional[int] = None
    last_split_date: Optional[datetime] = None
    declaration_date: Optional[datetime] = None
    dividend_date: Optional[datetime] = None
    ex_dividend_date: Optional[datetime] = None

    # Balance sheet (latest annual statement)
    assets: Optional[float] = None
    liabilities: Optional[float] = None

    def to_row(self) -> Dict[str, Any]:
        """Column mapping for persistence."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def populated_fields(self) -> Dict[str, Any]:
        """Fields holding a value (symbol included)."""
        return {k: v for k, v in self.to_row().items() if v is not None and v != ""}


# =============================================================
# RUN RESULT TYPES
# =============================================================

@dataclass
class InstrumentOutcome:
    """What happened to one instrument during a run."""
    ticker: str
    history_records: int = 0
    history_persisted: bool = False
    overview_persisted: bool = False
    overview_from_earnings: bool = False
    canceled: bool = False
    errors: List[str] = field(default_factory=list)

    def add_error(self, stage: str, error: Exception) -> None:
        """Record a handled failure."""
        self.errors.append(f"{stage}: {error}")

    @property
    def succeeded(self) -> bool:
        """Check if the instrument was fully refreshed."""
        return self.overview_persisted and not self.errors


@dataclass
class RefreshRunResult:
    """Result of a single refresh run."""
    run_id: str = field(default_factory=lambda: uuid4().hex[:12])
    status: RunStatus = RunStatus.IDLE
    instruments_total: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    outcomes: List[InstrumentOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def instruments_processed(self) -> int:
        return len(self.outcomes)

    @property
    def instruments_failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.errors)

    def mark_complete(self, status: RunStatus, completed_at: datetime) -> None:
        """Mark the run as finished and calculate duration."""
        self.status = status
        self.completed_at = completed_at
        if self.started_at:
            self.duration_seconds = (completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "instruments_total": self.instruments_total,
            "instruments_processed": self.instruments_processed,
            "instruments_failed": self.instruments_failed,
            "duration_seconds": round(self.duration_seconds, 3),
        }


__all__: Tuple[str, ...] = (
    "UpstreamSource",
    "RunStatus",
    "InstrumentStage",
    "STOCK_DATASOURCE",
    "RefreshConfig",
    "TrackedInstrument",
    "RawSourceResponse",
    "QuarterlyHistoryRecord",
    "OverviewMetricsRecord",
    "InstrumentOutcome",
    "RefreshRunResult",
)
