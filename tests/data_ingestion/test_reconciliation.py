"""
Tests for the overview merge.
"""

import math
from collections import Counter
from datetime import datetime, timezone

import pytest

from core.exceptions import FieldParseError
from data_ingestion.normalizers.equities_normalizer import EquitiesDerivedFields
from data_ingestion.reconciliation import (
    DATE_PATCHES,
    OVERVIEW_PATCHES,
    apply_patch,
    merge_overview,
)
from data_ingestion.types import OverviewMetricsRecord


@pytest.fixture
def seeded_record():
    """Overview record as produced from the earnings payload."""
    return OverviewMetricsRecord(
        symbol="BBCA",
        market="IDX",
        currency="IDR",
        market_cap=1.1e15,
        beta=0.8,
        last_actual_period_code="2024Q2",
        source_time_last_updated=datetime(2024, 8, 1, tzinfo=timezone.utc),
    )


class TestPatchTable:

    def test_every_patch_names_real_fields(self):
        record_fields = set(OverviewMetricsRecord.__dataclass_fields__)
        source_fields = set(EquitiesDerivedFields.__dataclass_fields__)

        for target, source in OVERVIEW_PATCHES + DATE_PATCHES:
            assert target in record_fields, target
            assert source in source_fields, source

    def test_duplicate_targets_are_kept(self):
        counts = Counter(target for target, _ in OVERVIEW_PATCHES)

        for target in ("current_ratio", "payout_ratio", "price_to_book_ratio",
                       "return_on_equity", "dividend_yield", "enterprise_value"):
            assert counts[target] == 2, target


class TestApplyPatch:

    def test_absent_values_are_not_written(self, seeded_record):
        assert not apply_patch(seeded_record, "beta", None)
        assert not apply_patch(seeded_record, "beta", float("nan"))
        assert not apply_patch(seeded_record, "beta", float("-inf"))
        assert not apply_patch(seeded_record, "market", "")

        assert seeded_record.beta == 0.8
        assert seeded_record.market == "IDX"

    def test_zero_is_a_value(self, seeded_record):
        assert apply_patch(seeded_record, "beta", 0.0)
        assert seeded_record.beta == 0.0


class TestMergeOverview:

    def test_none_target_raises(self):
        with pytest.raises(ValueError):
            merge_overview(None, EquitiesDerivedFields())

    def test_returns_same_record(self, seeded_record):
        assert merge_overview(seeded_record, EquitiesDerivedFields()) is seeded_record

    def test_empty_source_changes_nothing(self, seeded_record):
        before = seeded_record.to_row()

        merge_overview(seeded_record, EquitiesDerivedFields(symbol="OTHER"))

        assert seeded_record.to_row() == before

    def test_present_values_overwrite_and_absent_do_not(self, seeded_record):
        source = EquitiesDerivedFields(
            market_cap=1.0e13,
            beta=float("nan"),
            key_eps=300.0,
            key_profitability="",
            share_shares_outstanding=42,
            annual_assets=12.0,
        )

        merge_overview(seeded_record, source)

        assert seeded_record.market_cap == 1.0e13
        assert seeded_record.beta == 0.8
        assert seeded_record.eps == 300.0
        assert seeded_record.profitability is None
        assert seeded_record.shares_outstanding == 42
        assert seeded_record.assets == 12.0

    def test_later_patch_wins(self):
        record = OverviewMetricsRecord(symbol="BBCA")
        source = EquitiesDerivedFields(
            key_current_ratio=1.1,
            company_current_ratio=1.3,
            share_enterprise_value=5.0,
            enterprise_value=7.0,
        )

        merge_overview(record, source)

        assert record.current_ratio == 1.3
        assert record.enterprise_value == 7.0

    def test_earlier_patch_kept_when_later_absent(self):
        record = OverviewMetricsRecord(symbol="BBCA")
        source = EquitiesDerivedFields(key_current_ratio=1.1, company_current_ratio=None)

        merge_overview(record, source)

        assert record.current_ratio == 1.1

    def test_symbol_set_once(self):
        empty = OverviewMetricsRecord()
        merge_overview(empty, EquitiesDerivedFields(symbol="BBCA"))
        assert empty.symbol == "BBCA"

        named = OverviewMetricsRecord(symbol="BBCA")
        merge_overview(named, EquitiesDerivedFields(symbol="BBRI"))
        assert named.symbol == "BBCA"

    def test_dates_applied(self, seeded_record):
        source = EquitiesDerivedFields(
            share_dividend_date="2024-05-01T00:00:00Z",
            time_last_updated="2024-08-30T12:00:00Z",
        )

        merge_overview(seeded_record, source)

        assert seeded_record.dividend_date == datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert seeded_record.source_time_last_updated == datetime(2024, 8, 30, 12, tzinfo=timezone.utc)

    def test_malformed_date_after_scalars_applied(self, seeded_record):
        source = EquitiesDerivedFields(
            beta=1.2,
            key_eps=300.0,
            share_dividend_date="2024-05-01T00:00:00Z",
            share_ex_dividend_date="not a date",
        )

        with pytest.raises(FieldParseError) as exc_info:
            merge_overview(seeded_record, source)

        assert exc_info.value.field_name == "exDividendDate"
        assert seeded_record.beta == 1.2
        assert seeded_record.eps == 300.0
        assert seeded_record.dividend_date is None
        assert seeded_record.ex_dividend_date is None

    def test_no_nan_survives_merge(self):
        record = OverviewMetricsRecord(symbol="BBCA")
        source = EquitiesDerivedFields(**{
            name: float("nan")
            for name, field_def in EquitiesDerivedFields.__dataclass_fields__.items()
            if "float" in str(field_def.type)
        })

        merge_overview(record, source)

        for value in record.to_row().values():
            assert not (isinstance(value, float) and math.isnan(value))
