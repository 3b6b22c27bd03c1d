"""
Data Ingestion - Normalizers Package.

Each normalizer converts a raw upstream body to domain records.

Normalizers:
- parsing: Shared decode and RFC3339 helpers
- earnings_normalizer: Quarterly history and overview seed
- equities_normalizer: Equities-derived overview fields
"""

from data_ingestion.normalizers.parsing import (
    decode_payload,
    parse_rfc3339,
    none_if_empty,
    is_present,
)
from data_ingestion.normalizers.earnings_normalizer import (
    EarningsResponse,
    decode_earnings,
    to_quarterly_history_records,
    to_overview_seed,
)
from data_ingestion.normalizers.equities_normalizer import (
    EquitiesResponse,
    EquitiesDerivedFields,
    decode_equities,
    latest_annual_statement,
    to_equities_fields,
)


__all__ = [
    "decode_payload",
    "parse_rfc3339",
    "none_if_empty",
    "is_present",
    "EarningsResponse",
    "decode_earnings",
    "to_quarterly_history_records",
    "to_overview_seed",
    "EquitiesResponse",
    "EquitiesDerivedFields",
    "decode_equities",
    "latest_annual_statement",
    "to_equities_fields",
]
