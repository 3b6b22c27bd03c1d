"""
Database ORM Models - Stock Fundamentals Tables.

============================================================
SCHEMA
============================================================

- stock_information: tracked instruments, credentials and the
  freshness marker (last_refreshed_at)
- stock_earning_quarterly_history: one row per (symbol, period_code)
- stock_overview_metrics: one current-state row per symbol

All timestamps are UTC.

============================================================
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Float,
    DateTime, Index, UniqueConstraint,
)

from .engine import Base


# =============================================================
# HELPER FUNCTIONS
# =============================================================

def utc_now():
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


# SQLite only auto-increments INTEGER primary keys
Identity = BigInteger().with_variant(Integer, "sqlite")


# =============================================================
# 1. STOCK INFORMATION TABLE
# =============================================================

class StockInformation(Base):
    """
    Tracked instruments.

    Rows are managed outside the refresh pipeline; the pipeline only
    reads ticker/api_key and writes last_refreshed_at.
    """
    __tablename__ = "stock_information"

    id = Column(Identity, primary_key=True, autoincrement=True)
    ticker = Column(String(32), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    api_key = Column(Text, nullable=True)

    # Freshness marker
    last_refreshed_at = Column(DateTime(timezone=True), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<StockInformation(ticker={self.ticker}, last_refreshed_at={self.last_refreshed_at})>"


# =============================================================
# 2. QUARTERLY EARNINGS HISTORY TABLE
# =============================================================

class StockEarningQuarterlyHistory(Base):
    """
    Earnings facts per fiscal period.

    Source: earnings endpoint, History.quarterly
    Identity: (symbol, period_code); later runs overwrite estimates.
    """
    __tablename__ = "stock_earning_quarterly_history"

    id = Column(Identity, primary_key=True, autoincrement=True)

    symbol = Column(String(32), nullable=False)
    period_code = Column(String(32), nullable=False)
    sec_id = Column(String(64), nullable=True)
    instrument_id = Column(String(64), nullable=True)

    eps_actual = Column(Float, nullable=True)
    eps_surprise = Column(Float, nullable=True)
    eps_surprise_percent = Column(Float, nullable=True)
    revenue_actual = Column(Float, nullable=True)
    revenue_surprise = Column(Float, nullable=True)
    revenue_surprise_percent = Column(Float, nullable=True)
    forecast_source = Column(String(64), nullable=True)
    eps_forecast = Column(Float, nullable=True)
    revenue_forecast = Column(Float, nullable=True)
    earning_release_date = Column(DateTime(timezone=True), nullable=True)
    eps_gaap_consensus_median = Column(Float, nullable=True)
    eps_normalized_consensus_median = Column(Float, nullable=True)
    ciq_fiscal_period_type = Column(String(32), nullable=True)
    calendar_period_type = Column(String(32), nullable=True)
    calendar_period_start_date = Column(DateTime(timezone=True), nullable=True)
    calendar_period_end_date = Column(DateTime(timezone=True), nullable=True)
    primary_eps = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("symbol", "period_code", name="uq_quarterly_history_symbol_period"),
        Index("ix_quarterly_history_symbol", "symbol"),
    )

    def __repr__(self):
        return f"<StockEarningQuarterlyHistory(symbol={self.symbol}, period_code={self.period_code})>"


# =============================================================
# 3. OVERVIEW METRICS TABLE
# =============================================================

class StockOverviewMetrics(Base):
    """
    Denormalized current-state metrics, one row per symbol.

    Source: earnings seed overlaid with equities metrics
    Every upsert replaces all non-key columns.
    """
    __tablename__ = "stock_overview_metrics"

    symbol = Column(String(32), primary_key=True)

    # Identity
    sec_id = Column(String(64), nullable=True)
    instrument_id = Column(String(64), nullable=True)
    market = Column(String(32), nullable=True)
    currency = Column(String(16), nullable=True)

    # Earnings seed
    market_cap = Column(Float, nullable=True)
    last_actual_period_code = Column(String(32), nullable=True)
    last_actual_quarter_eps = Column(Float, nullable=True)
    last_actual_quarter_revenue = Column(Float, nullable=True)
    next_expected_report_date = Column(DateTime(timezone=True), nullable=True)
    source_time_last_updated = Column(DateTime(timezone=True), nullable=True)

    # Valuation / key metrics
    enterprise_value = Column(Float, nullable=True)
    beta = Column(Float, nullable=True)
    eps = Column(Float, nullable=True)
    book_value_per_share = Column(Float, nullable=True)
    latest_revenue_per_share = Column(Float, nullable=True)
    profitability = Column(String(64), nullable=True)
    stock_growth = Column(Float, nullable=True)
    latest_revenue = Column(Float, nullable=True)
    latest_income = Column(Float, nullable=True)
    latest_net_profit_margin = Column(Float, nullable=True)
    current_ratio = Column(Float, nullable=True)
    debt_to_equity_ratio = Column(Float, nullable=True)
    forward_price_to_eps = Column(Float, nullable=True)
    forward_dividend_yield = Column(Float, nullable=True)
    payout_ratio = Column(Float, nullable=True)
    price_to_book_ratio = Column(Float, nullable=True)
    return_on_assets = Column(Float, nullable=True)
    return_on_capital = Column(Float, nullable=True)
    return_on_equity = Column(Float, nullable=True)

    # Company metrics
    pe_5y_high_ratio = Column(Float, nullable=True)
    pe_5y_low_ratio = Column(Float, nullable=True)
    revenue_ytd_ytd = Column(Float, nullable=True)
    revenue_qq_last_year_growth_rate = Column(Float, nullable=True)
    net_income_ytd_ytd_growth_rate = Column(Float, nullable=True)
    net_income_qq_last_year_growth_rate = Column(Float, nullable=True)
    revenue_5y_avg_growth_rate = Column(Float, nullable=True)
    net_income_5y_avg_growth_rate = Column(Float, nullable=True)
    dividend_5y_avg_growth_rate = Column(Float, nullable=True)
    dividend_yield = Column(Float, nullable=True)
    debt_asset_ratio = Column(Float, nullable=True)
    leverage_ratio = Column(Float, nullable=True)
    interest_coverage = Column(Float, nullable=True)
    price_cash_flow_ratio = Column(Float, nullable=True)
    revenue_3y_avg = Column(Float, nullable=True)
    trailing_annual_dividend_yield = Column(Float, nullable=True)
    price_to_sales_ratio = Column(Float, nullable=True)
    book_value_share_ratio = Column(Float, nullable=True)
    operating_cash_flow = Column(Float, nullable=True)
    quick_ratio = Column(Float, nullable=True)
    current = Column(Float, nullable=True)
    diluted_eps_3y_growth = Column(Float, nullable=True)
    pe_growth_ratio = Column(Float, nullable=True)
    gross_margin = Column(Float, nullable=True)
    pretax_margin = Column(Float, nullable=True)
    net_profit_margin = Column(Float, nullable=True)
    average_gross_margin_5y = Column(Float, nullable=True)
    average_pretax_margin_5y = Column(Float, nullable=True)
    average_net_profit_margin_5y = Column(Float, nullable=True)
    operating_margin = Column(Float, nullable=True)
    net_margin_percent = Column(Float, nullable=True)
    return_on_equity_5y_avg = Column(Float, nullable=True)
    return_on_assets_5y_avg = Column(Float, nullable=True)
    return_on_capital_5y_avg = Column(Float, nullable=True)
    income_employee = Column(Float, nullable=True)
    revenue_employee = Column(Float, nullable=True)
    asset_turnover = Column(Float, nullable=True)
    inventory_turnover = Column(Float, nullable=True)
    receivable_turnover = Column(Float, nullable=True)
    roa_ttm = Column(Float, nullable=True)

    # Share statistics
    average_dividend_yield_5y = Column(Float, nullable=True)
    last_split_factor = Column(String(32), nullable=True)
    ex_dividend_amount = Column(Float, nullable=True)
    shares_outstanding = Column(BigInteger, nullable=True)
    last_split_date = Column(DateTime(timezone=True), nullable=True)
    declaration_date = Column(DateTime(timezone=True), nullable=True)
    dividend_date = Column(DateTime(timezone=True), nullable=True)
    ex_dividend_date = Column(DateTime(timezone=True), nullable=True)

    # Balance sheet
    assets = Column(Float, nullable=True)
    liabilities = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<StockOverviewMetrics(symbol={self.symbol})>"


# =============================================================
# EXPORTS
# =============================================================

__all__ = [
    "utc_now",
    "StockInformation",
    "StockEarningQuarterlyHistory",
    "StockOverviewMetrics",
]
