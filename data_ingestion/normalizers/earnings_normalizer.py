"""
Data Ingestion - Earnings Normalizer.

============================================================
RESPONSIBILITY
============================================================
Decodes the upstream "earnings" payload into domain records.

- Declares the earnings payload shape
- Produces quarterly history records in period-code order
- Produces the overview seed from the latest actual period

============================================================
DESIGN PRINCIPLES
============================================================
- Pure: input bytes in, records out, no I/O
- Unknown keys are ignored, declared keys are validated
- Date strings are parsed strictly (RFC3339) or rejected
- Period codes are sorted lexicographically for stable output

============================================================
EARNINGS PAYLOAD
============================================================
{
  "success": bool, "symbol": str, "secId": str,
  "data": {
    "InstrumentId", "Market", "Currency", "MarketCap",
    "LastActualFiscalPeriod", "ExpectedReportDate", "TimeLastUpdated",
    "LastActual": {"EpsActual", "RevenueActual"},
    "History": {"quarterly": {<period code>: {...}}}
  }
}

============================================================
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from data_ingestion.normalizers.parsing import (
    decode_payload,
    none_if_empty,
    parse_rfc3339,
)
from data_ingestion.types import (
    OverviewMetricsRecord,
    QuarterlyHistoryRecord,
    UpstreamSource,
)


SOURCE = UpstreamSource.EARNINGS.value


# =============================================================
# PAYLOAD SHAPE
# =============================================================

class _EarningsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)


class EarningsQuarter(_EarningsModel):
    """One entry of data.History.quarterly."""
    eps_actual: Optional[float] = Field(None, alias="EpsActual")
    eps_surprise: Optional[float] = Field(None, alias="EpsSurprise")
    eps_surprise_percent: Optional[float] = Field(None, alias="EpsSurprisePercent")
    revenue_actual: Optional[float] = Field(None, alias="RevenueActual")
    revenue_surprise: Optional[float] = Field(None, alias="RevenueSurprise")
    revenue_surprise_percent: Optional[float] = Field(None, alias="RevenueSurprisePercent")
    forecast_source: Optional[str] = Field(None, alias="ForecastSource")
    eps_forecast: Optional[float] = Field(None, alias="EpsForecast")
    revenue_forecast: Optional[float] = Field(None, alias="RevenueForecast")
    earning_release_date: Optional[str] = Field(None, alias="EarningReleaseDate")
    eps_gaap_consensus_median: Optional[float] = Field(None, alias="EPSGAAPConsensusMedian")
    eps_normalized_consensus_median: Optional[float] = Field(None, alias="EPSNormalizedConsensusMedian")
    ciq_fiscal_period_type: Optional[str] = Field(None, alias="CiqFiscalPeriodType")
    calendar_period_type: Optional[str] = Field(None, alias="CalendarPeriodType")
    calendar_period_start_date: Optional[str] = Field(None, alias="CalendarPeriodStartDate")
    calendar_period_end_date: Optional[str] = Field(None, alias="CalendarPeriodEndDate")
    primary_eps: Optional[str] = Field(None, alias="PrimaryEPS")


class EarningsLastActual(_EarningsModel):
    eps_actual: Optional[float] = Field(None, alias="EpsActual")
    revenue_actual: Optional[float] = Field(None, alias="RevenueActual")


class EarningsHistory(_EarningsModel):
    quarterly: Optional[Dict[str, Optional[EarningsQuarter]]] = None


class EarningsData(_EarningsModel):
    instrument_id: Optional[str] = Field(None, alias="InstrumentId")
    market: Optional[str] = Field(None, alias="Market")
    currency: Optional[str] = Field(None, alias="Currency")
    market_cap: Optional[float] = Field(None, alias="MarketCap")
    last_actual_fiscal_period: Optional[str] = Field(None, alias="LastActualFiscalPeriod")
    expected_report_date: Optional[str] = Field(None, alias="ExpectedReportDate")
    time_last_updated: Optional[str] = Field(None, alias="TimeLastUpdated")
    last_actual: Optional[EarningsLastActual] = Field(None, alias="LastActual")
    history: Optional[EarningsHistory] = Field(None, alias="History")


class EarningsResponse(_EarningsModel):
    """Top-level earnings envelope."""
    success: Optional[bool] = None
    symbol: Optional[str] = None
    sec_id: Optional[str] = Field(None, alias="secId")
    data: Optional[EarningsData] = None

    @property
    def payload(self) -> EarningsData:
        return self.data or EarningsData()

    def quarterly_history(self) -> Dict[str, EarningsQuarter]:
        """Quarterly map with null entries replaced by empty quarters."""
        history = self.payload.history
        if history is None or not history.quarterly:
            return {}
        return {
            period: quarter or EarningsQuarter()
            for period, quarter in history.quarterly.items()
        }


# =============================================================
# DECODE / CONVERT
# =============================================================

def decode_earnings(body: bytes) -> EarningsResponse:
    """
    Decode a raw earnings body.

    Raises:
        DecodeError: If the body is not the expected shape
    """
    return decode_payload(body, EarningsResponse, SOURCE)


def to_quarterly_history_records(
    response: EarningsResponse,
    fallback_symbol: Optional[str] = None,
) -> List[QuarterlyHistoryRecord]:
    """
    Convert the quarterly history map into records.

    Records are ordered by period code (lexicographic ascending),
    so identical payloads always produce identical sequences.

    Args:
        response: Decoded earnings payload
        fallback_symbol: Symbol used when the payload carries none

    Returns:
        List of records, empty if the payload has no history

    Raises:
        FieldParseError: If any period carries a malformed date
    """
    quarters = response.quarterly_history()
    if not quarters:
        return []

    symbol = response.symbol or fallback_symbol or ""
    sec_id = none_if_empty(response.sec_id)
    instrument_id = none_if_empty(response.payload.instrument_id)

    records = []
    for period in sorted(quarters):
        quarter = quarters[period]

        release_date = parse_rfc3339(
            quarter.earning_release_date,
            "EarningReleaseDate",
            SOURCE,
            f"earning release date for period {period}",
        )
        start_date = parse_rfc3339(
            quarter.calendar_period_start_date,
            "CalendarPeriodStartDate",
            SOURCE,
            f"calendar period start date for period {period}",
        )
        end_date = parse_rfc3339(
            quarter.calendar_period_end_date,
            "CalendarPeriodEndDate",
            SOURCE,
            f"calendar period end date for period {period}",
        )

        records.append(QuarterlyHistoryRecord(
            symbol=symbol,
            period_code=period,
            sec_id=sec_id,
            instrument_id=instrument_id,
            eps_actual=quarter.eps_actual,
            eps_surprise=quarter.eps_surprise,
            eps_surprise_percent=quarter.eps_surprise_percent,
            revenue_actual=quarter.revenue_actual,
            revenue_surprise=quarter.revenue_surprise,
            revenue_surprise_percent=quarter.revenue_surprise_percent,
            forecast_source=quarter.forecast_source,
            eps_forecast=quarter.eps_forecast,
            revenue_forecast=quarter.revenue_forecast,
            earning_release_date=release_date,
            eps_gaap_consensus_median=quarter.eps_gaap_consensus_median,
            eps_normalized_consensus_median=quarter.eps_normalized_consensus_median,
            ciq_fiscal_period_type=quarter.ciq_fiscal_period_type,
            calendar_period_type=quarter.calendar_period_type,
            calendar_period_start_date=start_date,
            calendar_period_end_date=end_date,
            primary_eps=quarter.primary_eps,
        ))

    return records


def to_overview_seed(
    response: EarningsResponse,
    fallback_symbol: Optional[str] = None,
) -> OverviewMetricsRecord:
    """
    Build the earnings-derived overview seed.

    Raises:
        FieldParseError: If the report or update timestamp is malformed
    """
    data = response.payload
    last_actual = data.last_actual or EarningsLastActual()

    next_report = parse_rfc3339(
        data.expected_report_date, "ExpectedReportDate", SOURCE, "expected report date",
    )
    last_updated = parse_rfc3339(
        data.time_last_updated, "TimeLastUpdated", SOURCE, "source time last updated",
    )

    return OverviewMetricsRecord(
        symbol=response.symbol or fallback_symbol or "",
        sec_id=none_if_empty(response.sec_id),
        instrument_id=none_if_empty(data.instrument_id),
        market=none_if_empty(data.market),
        currency=none_if_empty(data.currency),
        market_cap=data.market_cap,
        last_actual_period_code=none_if_empty(data.last_actual_fiscal_period),
        last_actual_quarter_eps=last_actual.eps_actual,
        last_actual_quarter_revenue=last_actual.revenue_actual,
        next_expected_report_date=next_report,
        source_time_last_updated=last_updated,
    )


__all__ = [
    "EarningsQuarter",
    "EarningsLastActual",
    "EarningsHistory",
    "EarningsData",
    "EarningsResponse",
    "decode_earnings",
    "to_quarterly_history_records",
    "to_overview_seed",
]
