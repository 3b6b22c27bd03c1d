"""
Shared fixtures for the refresh service tests.

- In-memory SQLite database with the ORM tables
- Fake upstream client serving canned bodies per (source, ticker)
- Payload builders for the earnings and equities endpoints
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest

from core.clock import MockClock
from core.exceptions import UpstreamStatusError
from data_ingestion.types import RawSourceResponse, RefreshConfig, UpstreamSource
from database.engine import create_all_tables, create_database_engine, create_session_factory
from database.models import StockInformation


# ============================================================
# PAYLOAD BUILDERS
# ============================================================

def earnings_payload(
    symbol: Optional[str] = "BBCA",
    quarterly: Optional[Dict[str, Any]] = None,
    **data: Any,
) -> Dict[str, Any]:
    """Earnings envelope with sensible defaults, overridable per field."""
    body_data: Dict[str, Any] = {
        "InstrumentId": "0P0000AAAA",
        "Market": "IDX",
        "Currency": "IDR",
        "MarketCap": 1.1e15,
        "LastActualFiscalPeriod": "2024Q2",
        "ExpectedReportDate": "2024-10-21T00:00:00Z",
        "TimeLastUpdated": "2024-08-01T10:15:00Z",
        "LastActual": {"EpsActual": 120.5, "RevenueActual": 2.5e13},
        "History": {
            "quarterly": quarterly if quarterly is not None else {
                "2024Q2": {
                    "EpsActual": 120.5,
                    "EpsForecast": 118.0,
                    "RevenueActual": 2.5e13,
                    "EarningReleaseDate": "2024-07-22T00:00:00Z",
                    "CalendarPeriodStartDate": "2024-04-01T00:00:00Z",
                    "CalendarPeriodEndDate": "2024-06-30T00:00:00Z",
                    "CiqFiscalPeriodType": "Q",
                },
                "2024Q1": {
                    "EpsActual": 110.0,
                    "EarningReleaseDate": "2024-04-22T00:00:00Z",
                },
            },
        },
    }
    body_data.update(data)
    return {"success": True, "symbol": symbol, "secId": "0P0000SEC", "data": body_data}


def equities_payload(symbol: Optional[str] = "BBCA", **data: Any) -> Dict[str, Any]:
    """Equities envelope; data keys are passed through as given."""
    return {"success": True, "symbol": symbol, "data": data}


def to_body(payload: Union[Dict[str, Any], str, bytes]) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload).encode("utf-8")


# ============================================================
# FAKE UPSTREAM
# ============================================================

class FakeUpstreamClient:
    """
    Stand-in for UpstreamClient.

    responses maps (source, ticker) to a payload or an exception.
    Unknown keys answer 404.
    """

    def __init__(self, responses: Optional[Dict[Tuple[UpstreamSource, str], Any]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Tuple[UpstreamSource, str, str]] = []
        self.closed = False

    def set(self, source: UpstreamSource, ticker: str, payload: Any) -> None:
        self.responses[(source, ticker)] = payload

    async def get(self, source: UpstreamSource, ticker: str, api_key: str) -> RawSourceResponse:
        self.calls.append((source, ticker, api_key))
        item = self.responses.get((source, ticker))
        if isinstance(item, Exception):
            raise item
        if item is None:
            raise UpstreamStatusError(source=source.value, status_code=404, body="not found")
        return RawSourceResponse(source=source, status_code=200, body=to_body(item))

    async def close(self) -> None:
        self.closed = True


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def fixed_now():
    return datetime(2024, 9, 1, 2, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_clock(fixed_now):
    return MockClock(initial_time=fixed_now)


@pytest.fixture
def sqlite_engine():
    """Fresh in-memory database per test."""
    engine = create_database_engine("sqlite://")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return create_session_factory(sqlite_engine)


@pytest.fixture
def seed_instruments(session_factory):
    """Insert tracked instruments: seed_instruments([("BBCA", "key-1"), ...])."""

    def _seed(rows, last_refreshed_at=None):
        session = session_factory()
        try:
            for ticker, api_key in rows:
                session.add(StockInformation(
                    ticker=ticker,
                    api_key=api_key,
                    last_refreshed_at=last_refreshed_at,
                ))
            session.commit()
        finally:
            session.close()

    return _seed


@pytest.fixture
def refresh_config():
    return RefreshConfig(
        base_url="http://upstream.test/api/stocks/v2",
        min_instrument_interval_seconds=0,
        request_timeout_seconds=1.0,
        drain_timeout_seconds=1.0,
    )


@pytest.fixture
def fake_client():
    return FakeUpstreamClient()


@pytest.fixture
def earnings_body():
    """Builder: earnings_body(symbol=..., quarterly=..., **data) -> bytes."""

    def _build(*args: Any, **kwargs: Any) -> bytes:
        return to_body(earnings_payload(*args, **kwargs))

    return _build


@pytest.fixture
def equities_body():
    """Builder: equities_body(symbol=..., **data) -> bytes."""

    def _build(*args: Any, **kwargs: Any) -> bytes:
        return to_body(equities_payload(*args, **kwargs))

    return _build
