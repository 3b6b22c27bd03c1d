"""
Data Ingestion - Collectors Package.

Collectors:
- base: Pooled HTTP client for the stock provider
- dual_source: Concurrent earnings + equities fetch per instrument
"""

from data_ingestion.collectors.base import UpstreamClient, decode_success_flag
from data_ingestion.collectors.dual_source import (
    SourceOutcome,
    DualFetchResult,
    DualSourceFetcher,
)


__all__ = [
    "UpstreamClient",
    "decode_success_flag",
    "SourceOutcome",
    "DualFetchResult",
    "DualSourceFetcher",
]
