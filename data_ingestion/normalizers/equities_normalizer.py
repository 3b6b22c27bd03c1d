"""
Data Ingestion - Equities Normalizer.

============================================================
RESPONSIBILITY
============================================================
Decodes the upstream "equities" payload and flattens it into the
patch source consumed by the merge engine.

- Declares the equities payload shape (camelCase keys)
- Selects the most recent annual statement by integer year
- Flattens key metrics, company metrics and share statistics

============================================================
DESIGN PRINCIPLES
============================================================
- Pure: no I/O, no merging
- Date strings stay raw here; they are parsed when merged, after
  every scalar field has been applied
- Non-numeric annual statement keys are ignored, never an error

============================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from data_ingestion.normalizers.parsing import decode_payload, parse_rfc3339
from data_ingestion.types import UpstreamSource


SOURCE = UpstreamSource.EQUITIES.value


# =============================================================
# PAYLOAD SHAPE
# =============================================================

class _EquitiesModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)


class AnnualStatement(_EquitiesModel):
    assets: Optional[float] = None
    liabilities: Optional[float] = None


class KeyMetrics(_EquitiesModel):
    eps: Optional[float] = None
    book_value_per_share: Optional[float] = Field(None, alias="bookValuePerShare")
    latest_revenue_per_share: Optional[float] = Field(None, alias="latestRevenuePerShare")
    profitability: Optional[str] = None
    stock_growth: Optional[float] = Field(None, alias="stockGrowth")
    latest_revenue: Optional[float] = Field(None, alias="latestRevenue")
    latest_income: Optional[float] = Field(None, alias="latestIncome")
    latest_net_profit_margin: Optional[float] = Field(None, alias="latestNetProfitMargin")
    current_ratio: Optional[float] = Field(None, alias="currentRatio")
    debt_to_equity_ratio: Optional[float] = Field(None, alias="debtToEquityRatio")
    forward_price_to_eps: Optional[float] = Field(None, alias="forwardPriceToEPS")
    forward_dividend_yield: Optional[float] = Field(None, alias="forwardDividendYield")
    payout_ratio: Optional[float] = Field(None, alias="payoutRatio")
    price_to_book_ratio: Optional[float] = Field(None, alias="priceToBookRatio")
    return_on_assets: Optional[float] = Field(None, alias="returnOnAssets")
    return_on_capital: Optional[float] = Field(None, alias="returnOnCapital")
    return_on_equity: Optional[float] = Field(None, alias="returnOnEquity")


class CompanyMetrics(_EquitiesModel):
    pe_5y_high_ratio: Optional[float] = Field(None, alias="pE5YearHighRatio")
    pe_5y_low_ratio: Optional[float] = Field(None, alias="pE5YearLowRatio")
    revenue_ytd_ytd: Optional[float] = Field(None, alias="revenueYTDYTD")
    revenue_qq_last_year_growth_rate: Optional[float] = Field(None, alias="revenueQQLastYearGrowthRate")
    net_income_ytd_ytd_growth_rate: Optional[float] = Field(None, alias="netIncomeYTDYTDGrowthRate")
    net_income_qq_last_year_growth_rate: Optional[float] = Field(None, alias="netIncomeQQLastYearGrowthRate")
    revenue_5y_avg_growth_rate: Optional[float] = Field(None, alias="revenue5YearAverageGrowthRate")
    net_income_5y_avg_growth_rate: Optional[float] = Field(None, alias="netIncome5YearAverageGrowthRate")
    dividend_5y_avg_growth_rate: Optional[float] = Field(None, alias="dividend5YearAverageGrowthRate")
    forward_dividend_yield: Optional[float] = Field(None, alias="forwardDividendYield")
    dividend_yield: Optional[float] = Field(None, alias="dividendYield")
    current_ratio: Optional[float] = Field(None, alias="currentRatio")
    debt_asset_ratio: Optional[float] = Field(None, alias="debtAssetRatio")
    leverage_ratio: Optional[float] = Field(None, alias="leverageRatio")
    interest_coverage: Optional[float] = Field(None, alias="interestCoverage")
    price_cash_flow_ratio: Optional[float] = Field(None, alias="priceCashFlowRatio")
    revenue_3y_avg: Optional[float] = Field(None, alias="revenue3YearAverage")
    trailing_annual_dividend_yield: Optional[float] = Field(None, alias="trailingAnnualDividendYield")
    price_book_ratio: Optional[float] = Field(None, alias="priceBookRatio")
    price_sales_ratio: Optional[float] = Field(None, alias="priceSalesRatio")
    book_value_share_ratio: Optional[float] = Field(None, alias="bookValueShareRatio")
    operating_cash_flow: Optional[float] = Field(None, alias="operatingCashFlow")
    payout_ratio: Optional[float] = Field(None, alias="payoutRatio")
    quick_ratio: Optional[float] = Field(None, alias="quickRatio")
    current: Optional[float] = None
    debt_equity_ratio: Optional[float] = Field(None, alias="debtEquityRatio")
    diluted_eps_3y_growth: Optional[float] = Field(None, alias="dilutedEPS3YearGrowth")
    pe_growth_ratio: Optional[float] = Field(None, alias="pEGrowthRatio")
    gross_margin: Optional[float] = Field(None, alias="grossMargin")
    pretax_margin: Optional[float] = Field(None, alias="preTaxMargin")
    net_profit_margin: Optional[float] = Field(None, alias="netProfitMargin")
    average_gross_margin_5y: Optional[float] = Field(None, alias="averageGrossMargin5Year")
    average_pretax_margin_5y: Optional[float] = Field(None, alias="averagePreTaxMargin5Year")
    average_net_profit_margin_5y: Optional[float] = Field(None, alias="averageNetProfitMargin5Year")
    operating_margin: Optional[float] = Field(None, alias="operatingMargin")
    net_margin_percent: Optional[float] = Field(None, alias="netMarginPercent")
    return_on_equity_current: Optional[float] = Field(None, alias="returnOnEquityCurrent")
    return_on_equity_5y_avg: Optional[float] = Field(None, alias="returnOnEquity5YearAverage")
    return_on_asset_current: Optional[float] = Field(None, alias="returnOnAssetCurrent")
    return_on_asset_5y_avg: Optional[float] = Field(None, alias="returnOnAsset5YearAverage")
    return_on_capital_current: Optional[float] = Field(None, alias="returnOnCapitalCurrent")
    return_on_capital_5y_avg: Optional[float] = Field(None, alias="returnOnCapital5YearAverage")
    income_employee: Optional[float] = Field(None, alias="incomeEmployee")
    revenue_employee: Optional[float] = Field(None, alias="revenueEmployee")
    asset_turnover: Optional[float] = Field(None, alias="assetTurnover")
    inventory_turnover: Optional[float] = Field(None, alias="inventoryTurnover")
    receivable_turnover: Optional[float] = Field(None, alias="receivableTurnover")
    roa_ttm: Optional[float] = Field(None, alias="roaTTM")


class ShareStatistics(_EquitiesModel):
    average_dividend_yield_5y: Optional[float] = Field(None, alias="averageDividendYield5Year")
    last_split_factor: Optional[str] = Field(None, alias="lastSplitFactor")
    last_split_date: Optional[str] = Field(None, alias="lastSplitDate")
    declaration_date: Optional[str] = Field(None, alias="declarationDate")
    dividend_date: Optional[str] = Field(None, alias="dividendDate")
    ex_dividend_date: Optional[str] = Field(None, alias="exDividendDate")
    ex_dividend_amount: Optional[float] = Field(None, alias="exDividendAmount")
    shares_outstanding: Optional[int] = Field(None, alias="sharesOutstanding")
    enterprise_value: Optional[float] = Field(None, alias="enterpriseValue")
    dividend_yield: Optional[float] = Field(None, alias="dividendYield")


class EquitiesAnalysis(_EquitiesModel):
    annual_statements: Optional[Dict[str, Optional[AnnualStatement]]] = Field(None, alias="annualStatements")
    key_metrics: Optional[KeyMetrics] = Field(None, alias="keyMetrics")
    company_metrics: Optional[CompanyMetrics] = Field(None, alias="companyMetrics")
    share_statistics: Optional[ShareStatistics] = Field(None, alias="shareStatistics")


class EquitiesData(_EquitiesModel):
    instrument_id: Optional[str] = Field(None, alias="instrumentId")
    market: Optional[str] = None
    currency: Optional[str] = None
    market_cap: Optional[float] = Field(None, alias="marketCap")
    enterprise_value: Optional[float] = Field(None, alias="enterpriseValue")
    beta: Optional[float] = None
    time_last_updated: Optional[str] = Field(None, alias="timeLastUpdated")
    analysis: Optional[EquitiesAnalysis] = None


class EquitiesResponse(_EquitiesModel):
    """Top-level equities envelope."""
    success: Optional[bool] = None
    symbol: Optional[str] = None
    sec_id: Optional[str] = Field(None, alias="secId")
    data: Optional[EquitiesData] = None


# =============================================================
# PATCH SOURCE
# =============================================================

@dataclass
class EquitiesDerivedFields:
    """
    Flattened equities values, named by their origin in the payload.

    Prefixes: key_ (keyMetrics), company_ (companyMetrics),
    share_ (shareStatistics), annual_ (latest annual statement).
    Date fields hold the raw strings.
    """
    symbol: Optional[str] = None

    beta: Optional[float] = None
    market_cap: Optional[float] = None
    enterprise_value: Optional[float] = None
    time_last_updated: Optional[str] = None

    key_eps: Optional[float] = None
    key_book_value_per_share: Optional[float] = None
    key_latest_revenue_per_share: Optional[float] = None
    key_profitability: Optional[str] = None
    key_stock_growth: Optional[float] = None
    key_latest_revenue: Optional[float] = None
    key_latest_income: Optional[float] = None
    key_latest_net_profit_margin: Optional[float] = None
    key_current_ratio: Optional[float] = None
    key_debt_to_equity_ratio: Optional[float] = None
    key_forward_price_to_eps: Optional[float] = None
    key_forward_dividend_yield: Optional[float] = None
    key_payout_ratio: Optional[float] = None
    key_price_to_book_ratio: Optional[float] = None
    key_return_on_assets: Optional[float] = None
    key_return_on_capital: Optional[float] = None
    key_return_on_equity: Optional[float] = None

    company_pe_5y_high_ratio: Optional[float] = None
    company_pe_5y_low_ratio: Optional[float] = None
    company_revenue_ytd_ytd: Optional[float] = None
    company_revenue_qq_last_year_growth_rate: Optional[float] = None
    company_net_income_ytd_ytd_growth_rate: Optional[float] = None
    company_net_income_qq_last_year_growth_rate: Optional[float] = None
    company_revenue_5y_avg_growth_rate: Optional[float] = None
    company_net_income_5y_avg_growth_rate: Optional[float] = None
    company_dividend_5y_avg_growth_rate: Optional[float] = None
    company_dividend_yield: Optional[float] = None
    company_current_ratio: Optional[float] = None
    company_debt_asset_ratio: Optional[float] = None
    company_leverage_ratio: Optional[float] = None
    company_interest_coverage: Optional[float] = None
    company_price_cash_flow_ratio: Optional[float] = None
    company_revenue_3y_avg: Optional[float] = None
    company_trailing_annual_dividend_yield: Optional[float] = None
    company_price_book_ratio: Optional[float] = None
    company_price_sales_ratio: Optional[float] = None
    company_book_value_share_ratio: Optional[float] = None
    company_operating_cash_flow: Optional[float] = None
    company_payout_ratio: Optional[float] = None
    company_quick_ratio: Optional[float] = None
    company_current: Optional[float] = None
    company_debt_equity_ratio: Optional[float] = None
    company_diluted_eps_3y_growth: Optional[float] = None
    company_pe_growth_ratio: Optional[float] = None
    company_gross_margin: Optional[float] = None
    company_pretax_margin: Optional[float] = None
    company_net_profit_margin: Optional[float] = None
    company_average_gross_margin_5y: Optional[float] = None
    company_average_pretax_margin_5y: Optional[float] = None
    company_average_net_profit_margin_5y: Optional[float] = None
    company_operating_margin: Optional[float] = None
    company_net_margin_percent: Optional[float] = None
    company_return_on_equity_current: Optional[float] = None
    company_return_on_equity_5y_avg: Optional[float] = None
    company_return_on_asset_current: Optional[float] = None
    company_return_on_asset_5y_avg: Optional[float] = None
    company_return_on_capital_current: Optional[float] = None
    company_return_on_capital_5y_avg: Optional[float] = None
    company_income_employee: Optional[float] = None
    company_revenue_employee: Optional[float] = None
    company_asset_turnover: Optional[float] = None
    company_inventory_turnover: Optional[float] = None
    company_receivable_turnover: Optional[float] = None
    company_roa_ttm: Optional[float] = None

    share_average_dividend_yield_5y: Optional[float] = None
    share_last_split_factor: Optional[str] = None
    share_ex_dividend_amount: Optional[float] = None
    share_shares_outstanding: Optional[int] = None
    share_enterprise_value: Optional[float] = None
    share_dividend_yield: Optional[float] = None
    share_last_split_date: Optional[str] = None
    share_declaration_date: Optional[str] = None
    share_dividend_date: Optional[str] = None
    share_ex_dividend_date: Optional[str] = None

    annual_assets: Optional[float] = None
    annual_liabilities: Optional[float] = None

    def parse_dates(self) -> Dict[str, Optional[datetime]]:
        """
        Parse the raw date strings.

        Returns:
            Mapping of source field name to parsed datetime (or None)

        Raises:
            FieldParseError: On the first malformed date
        """
        return {
            "share_last_split_date": parse_rfc3339(
                self.share_last_split_date, "lastSplitDate", SOURCE, "last split date",
            ),
            "share_declaration_date": parse_rfc3339(
                self.share_declaration_date, "declarationDate", SOURCE, "declaration date",
            ),
            "share_dividend_date": parse_rfc3339(
                self.share_dividend_date, "dividendDate", SOURCE, "dividend date",
            ),
            "share_ex_dividend_date": parse_rfc3339(
                self.share_ex_dividend_date, "exDividendDate", SOURCE, "ex-dividend date",
            ),
            "time_last_updated": parse_rfc3339(
                self.time_last_updated, "timeLastUpdated", SOURCE, "source time last updated",
            ),
        }


# =============================================================
# DECODE / CONVERT
# =============================================================

def decode_equities(body: bytes) -> EquitiesResponse:
    """
    Decode a raw equities body.

    Raises:
        DecodeError: If the body is not the expected shape
    """
    return decode_payload(body, EquitiesResponse, SOURCE)


def _is_year_key(key: Any) -> bool:
    """Plain base-10 integer with an optional sign; no spaces or underscores."""
    if not isinstance(key, str):
        return False
    digits = key[1:] if key[:1] in ("+", "-") else key
    return digits.isascii() and digits.isdigit()


def latest_annual_statement(
    statements: Optional[Dict[str, Optional[AnnualStatement]]],
) -> Optional[AnnualStatement]:
    """
    Select the statement with the greatest integer year key.

    Keys that do not parse as integers are skipped. Returns None when
    no key qualifies.
    """
    if not statements:
        return None

    latest_key = None
    latest_year = None
    for key in statements:
        if not _is_year_key(key):
            continue
        year = int(key)
        if latest_year is None or year > latest_year:
            latest_year = year
            latest_key = key

    if latest_key is None:
        return None
    return statements[latest_key] or AnnualStatement()


def to_equities_fields(response: EquitiesResponse) -> EquitiesDerivedFields:
    """Flatten a decoded equities payload into the merge patch source."""
    data = response.data or EquitiesData()
    analysis = data.analysis or EquitiesAnalysis()
    km = analysis.key_metrics or KeyMetrics()
    cm = analysis.company_metrics or CompanyMetrics()
    ss = analysis.share_statistics or ShareStatistics()
    annual = latest_annual_statement(analysis.annual_statements) or AnnualStatement()

    return EquitiesDerivedFields(
        symbol=response.symbol,
        beta=data.beta,
        market_cap=data.market_cap,
        enterprise_value=data.enterprise_value,
        time_last_updated=data.time_last_updated,

        key_eps=km.eps,
        key_book_value_per_share=km.book_value_per_share,
        key_latest_revenue_per_share=km.latest_revenue_per_share,
        key_profitability=km.profitability,
        key_stock_growth=km.stock_growth,
        key_latest_revenue=km.latest_revenue,
        key_latest_income=km.latest_income,
        key_latest_net_profit_margin=km.latest_net_profit_margin,
        key_current_ratio=km.current_ratio,
        key_debt_to_equity_ratio=km.debt_to_equity_ratio,
        key_forward_price_to_eps=km.forward_price_to_eps,
        key_forward_dividend_yield=km.forward_dividend_yield,
        key_payout_ratio=km.payout_ratio,
        key_price_to_book_ratio=km.price_to_book_ratio,
        key_return_on_assets=km.return_on_assets,
        key_return_on_capital=km.return_on_capital,
        key_return_on_equity=km.return_on_equity,

        company_pe_5y_high_ratio=cm.pe_5y_high_ratio,
        company_pe_5y_low_ratio=cm.pe_5y_low_ratio,
        company_revenue_ytd_ytd=cm.revenue_ytd_ytd,
        company_revenue_qq_last_year_growth_rate=cm.revenue_qq_last_year_growth_rate,
        company_net_income_ytd_ytd_growth_rate=cm.net_income_ytd_ytd_growth_rate,
        company_net_income_qq_last_year_growth_rate=cm.net_income_qq_last_year_growth_rate,
        company_revenue_5y_avg_growth_rate=cm.revenue_5y_avg_growth_rate,
        company_net_income_5y_avg_growth_rate=cm.net_income_5y_avg_growth_rate,
        company_dividend_5y_avg_growth_rate=cm.dividend_5y_avg_growth_rate,
        company_dividend_yield=cm.dividend_yield,
        company_current_ratio=cm.current_ratio,
        company_debt_asset_ratio=cm.debt_asset_ratio,
        company_leverage_ratio=cm.leverage_ratio,
        company_interest_coverage=cm.interest_coverage,
        company_price_cash_flow_ratio=cm.price_cash_flow_ratio,
        company_revenue_3y_avg=cm.revenue_3y_avg,
        company_trailing_annual_dividend_yield=cm.trailing_annual_dividend_yield,
        company_price_book_ratio=cm.price_book_ratio,
        company_price_sales_ratio=cm.price_sales_ratio,
        company_book_value_share_ratio=cm.book_value_share_ratio,
        company_operating_cash_flow=cm.operating_cash_flow,
        company_payout_ratio=cm.payout_ratio,
        company_quick_ratio=cm.quick_ratio,
        company_current=cm.current,
        company_debt_equity_ratio=cm.debt_equity_ratio,
        company_diluted_eps_3y_growth=cm.diluted_eps_3y_growth,
        company_pe_growth_ratio=cm.pe_growth_ratio,
        company_gross_margin=cm.gross_margin,
        company_pretax_margin=cm.pretax_margin,
        company_net_profit_margin=cm.net_profit_margin,
        company_average_gross_margin_5y=cm.average_gross_margin_5y,
        company_average_pretax_margin_5y=cm.average_pretax_margin_5y,
        company_average_net_profit_margin_5y=cm.average_net_profit_margin_5y,
        company_operating_margin=cm.operating_margin,
        company_net_margin_percent=cm.net_margin_percent,
        company_return_on_equity_current=cm.return_on_equity_current,
        company_return_on_equity_5y_avg=cm.return_on_equity_5y_avg,
        company_return_on_asset_current=cm.return_on_asset_current,
        company_return_on_asset_5y_avg=cm.return_on_asset_5y_avg,
        company_return_on_capital_current=cm.return_on_capital_current,
        company_return_on_capital_5y_avg=cm.return_on_capital_5y_avg,
        company_income_employee=cm.income_employee,
        company_revenue_employee=cm.revenue_employee,
        company_asset_turnover=cm.asset_turnover,
        company_inventory_turnover=cm.inventory_turnover,
        company_receivable_turnover=cm.receivable_turnover,
        company_roa_ttm=cm.roa_ttm,

        share_average_dividend_yield_5y=ss.average_dividend_yield_5y,
        share_last_split_factor=ss.last_split_factor,
        share_ex_dividend_amount=ss.ex_dividend_amount,
        share_shares_outstanding=ss.shares_outstanding,
        share_enterprise_value=ss.enterprise_value,
        share_dividend_yield=ss.dividend_yield,
        share_last_split_date=ss.last_split_date,
        share_declaration_date=ss.declaration_date,
        share_dividend_date=ss.dividend_date,
        share_ex_dividend_date=ss.ex_dividend_date,

        annual_assets=annual.assets,
        annual_liabilities=annual.liabilities,
    )


__all__ = [
    "AnnualStatement",
    "KeyMetrics",
    "CompanyMetrics",
    "ShareStatistics",
    "EquitiesAnalysis",
    "EquitiesData",
    "EquitiesResponse",
    "EquitiesDerivedFields",
    "decode_equities",
    "latest_annual_statement",
    "to_equities_fields",
]
