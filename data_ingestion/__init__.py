"""
Data Ingestion Package.

This package handles collection, normalization and merging of
stock fundamentals from the upstream provider.

Sub-packages:
- collectors: HTTP client and dual-source fetcher
- normalizers: Payload decoding into domain records

Modules:
- reconciliation: Overview merge (earnings seed + equities patches)
- refresh_service: The batch refresh run

Only the shared types are re-exported here; import the service
from data_ingestion.refresh_service.
"""

from data_ingestion.types import (
    UpstreamSource,
    RunStatus,
    InstrumentStage,
    STOCK_DATASOURCE,
    RefreshConfig,
    TrackedInstrument,
    RawSourceResponse,
    QuarterlyHistoryRecord,
    OverviewMetricsRecord,
    InstrumentOutcome,
    RefreshRunResult,
)


__all__ = [
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
]
