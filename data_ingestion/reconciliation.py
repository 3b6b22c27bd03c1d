"""
Data Ingestion - Overview Reconciliation.

============================================================
RESPONSIBILITY
============================================================
Overlays equities-derived values onto an overview record.

- Applies an ordered list of field patches
- Only promotes present values (finite floats, non-empty strings)
- Parses and applies date fields after all scalar fields

============================================================
DESIGN PRINCIPLES
============================================================
- A patch never replaces a value with null, NaN, Inf or ""
- Fields the source does not supply are left untouched
- Later patches for the same target field win
- The target is mutated in place and also returned

============================================================
"""

from typing import List, Optional, Tuple

from data_ingestion.normalizers.equities_normalizer import EquitiesDerivedFields
from data_ingestion.normalizers.parsing import is_present
from data_ingestion.types import OverviewMetricsRecord


# (target field on OverviewMetricsRecord, source field on EquitiesDerivedFields)
Patch = Tuple[str, str]


# Several targets appear twice (current_ratio, debt_to_equity_ratio,
# payout_ratio, price_to_book_ratio, return_on_*, dividend_yield,
# enterprise_value). Order is kept so the last present value wins.
OVERVIEW_PATCHES: List[Patch] = [
    ("beta", "beta"),

    # keyMetrics
    ("eps", "key_eps"),
    ("book_value_per_share", "key_book_value_per_share"),
    ("latest_revenue_per_share", "key_latest_revenue_per_share"),
    ("profitability", "key_profitability"),
    ("stock_growth", "key_stock_growth"),
    ("latest_revenue", "key_latest_revenue"),
    ("latest_income", "key_latest_income"),
    ("latest_net_profit_margin", "key_latest_net_profit_margin"),
    ("current_ratio", "key_current_ratio"),
    ("debt_to_equity_ratio", "key_debt_to_equity_ratio"),
    ("forward_price_to_eps", "key_forward_price_to_eps"),
    ("forward_dividend_yield", "key_forward_dividend_yield"),
    ("payout_ratio", "key_payout_ratio"),
    ("price_to_book_ratio", "key_price_to_book_ratio"),
    ("return_on_assets", "key_return_on_assets"),
    ("return_on_capital", "key_return_on_capital"),
    ("return_on_equity", "key_return_on_equity"),

    # companyMetrics
    ("pe_5y_high_ratio", "company_pe_5y_high_ratio"),
    ("pe_5y_low_ratio", "company_pe_5y_low_ratio"),
    ("revenue_ytd_ytd", "company_revenue_ytd_ytd"),
    ("revenue_qq_last_year_growth_rate", "company_revenue_qq_last_year_growth_rate"),
    ("net_income_ytd_ytd_growth_rate", "company_net_income_ytd_ytd_growth_rate"),
    ("net_income_qq_last_year_growth_rate", "company_net_income_qq_last_year_growth_rate"),
    ("revenue_5y_avg_growth_rate", "company_revenue_5y_avg_growth_rate"),
    ("net_income_5y_avg_growth_rate", "company_net_income_5y_avg_growth_rate"),
    ("dividend_5y_avg_growth_rate", "company_dividend_5y_avg_growth_rate"),
    ("dividend_yield", "company_dividend_yield"),
    ("current_ratio", "company_current_ratio"),
    ("debt_asset_ratio", "company_debt_asset_ratio"),
    ("leverage_ratio", "company_leverage_ratio"),
    ("interest_coverage", "company_interest_coverage"),
    ("price_cash_flow_ratio", "company_price_cash_flow_ratio"),
    ("revenue_3y_avg", "company_revenue_3y_avg"),
    ("trailing_annual_dividend_yield", "company_trailing_annual_dividend_yield"),
    ("price_to_book_ratio", "company_price_book_ratio"),
    ("price_to_sales_ratio", "company_price_sales_ratio"),
    ("book_value_share_ratio", "company_book_value_share_ratio"),
    ("operating_cash_flow", "company_operating_cash_flow"),
    ("payout_ratio", "company_payout_ratio"),
    ("quick_ratio", "company_quick_ratio"),
    ("current", "company_current"),
    ("debt_to_equity_ratio", "company_debt_equity_ratio"),
    ("diluted_eps_3y_growth", "company_diluted_eps_3y_growth"),
    ("pe_growth_ratio", "company_pe_growth_ratio"),
    ("gross_margin", "company_gross_margin"),
    ("pretax_margin", "company_pretax_margin"),
    ("net_profit_margin", "company_net_profit_margin"),
    ("average_gross_margin_5y", "company_average_gross_margin_5y"),
    ("average_pretax_margin_5y", "company_average_pretax_margin_5y"),
    ("average_net_profit_margin_5y", "company_average_net_profit_margin_5y"),
    ("operating_margin", "company_operating_margin"),
    ("net_margin_percent", "company_net_margin_percent"),
    ("return_on_equity", "company_return_on_equity_current"),
    ("return_on_equity_5y_avg", "company_return_on_equity_5y_avg"),
    ("return_on_assets", "company_return_on_asset_current"),
    ("return_on_assets_5y_avg", "company_return_on_asset_5y_avg"),
    ("return_on_capital", "company_return_on_capital_current"),
    ("return_on_capital_5y_avg", "company_return_on_capital_5y_avg"),
    ("income_employee", "company_income_employee"),
    ("revenue_employee", "company_revenue_employee"),
    ("asset_turnover", "company_asset_turnover"),
    ("inventory_turnover", "company_inventory_turnover"),
    ("receivable_turnover", "company_receivable_turnover"),
    ("roa_ttm", "company_roa_ttm"),

    # shareStatistics
    ("average_dividend_yield_5y", "share_average_dividend_yield_5y"),
    ("last_split_factor", "share_last_split_factor"),
    ("ex_dividend_amount", "share_ex_dividend_amount"),
    ("shares_outstanding", "share_shares_outstanding"),
    ("enterprise_value", "share_enterprise_value"),
    ("dividend_yield", "share_dividend_yield"),

    # top level
    ("market_cap", "market_cap"),
    ("enterprise_value", "enterprise_value"),

    # latest annual statement
    ("assets", "annual_assets"),
    ("liabilities", "annual_liabilities"),
]


# Applied only once every date has parsed.
DATE_PATCHES: List[Patch] = [
    ("last_split_date", "share_last_split_date"),
    ("declaration_date", "share_declaration_date"),
    ("dividend_date", "share_dividend_date"),
    ("ex_dividend_date", "share_ex_dividend_date"),
    ("source_time_last_updated", "time_last_updated"),
]


def apply_patch(target: OverviewMetricsRecord, target_field: str, value) -> bool:
    """Promote value into target_field if present. Returns True if written."""
    if not is_present(value):
        return False
    setattr(target, target_field, value)
    return True


def merge_overview(
    target: Optional[OverviewMetricsRecord],
    source: EquitiesDerivedFields,
) -> OverviewMetricsRecord:
    """
    Merge equities-derived fields into an overview record.

    Args:
        target: Record to update in place
        source: Flattened equities values

    Returns:
        The same target record

    Raises:
        ValueError: If target is None
        FieldParseError: If a date is malformed. Scalar fields are
            already applied when this is raised; no date is applied.
    """
    if target is None:
        raise ValueError("overview metrics record is None")

    if not target.symbol and source.symbol:
        target.symbol = source.symbol

    for target_field, source_field in OVERVIEW_PATCHES:
        apply_patch(target, target_field, getattr(source, source_field))

    parsed_dates = source.parse_dates()
    for target_field, source_field in DATE_PATCHES:
        apply_patch(target, target_field, parsed_dates[source_field])

    return target


__all__ = [
    "Patch",
    "OVERVIEW_PATCHES",
    "DATE_PATCHES",
    "apply_patch",
    "merge_overview",
]
