"""
Data Ingestion - Dual-Source Fetcher.

============================================================
PURPOSE
============================================================
Fetches the earnings and equities payloads of one instrument
concurrently and returns both outcomes.

============================================================
DESIGN PRINCIPLES
============================================================
- Two legs, each with its own timeout and failure domain
- A failing leg never cancels or hides the other
- Cancellation of the caller or the run cancel signal aborts both legs
- Upstream concurrency per instrument is exactly two

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from core.exceptions import UpstreamError
from data_ingestion.collectors.base import UpstreamClient
from data_ingestion.types import RawSourceResponse, TrackedInstrument, UpstreamSource


logger = logging.getLogger("collector.dual_source")


@dataclass(frozen=True)
class SourceOutcome:
    """Result of one leg: a response or an upstream error, never both."""
    source: UpstreamSource
    response: Optional[RawSourceResponse] = None
    error: Optional[UpstreamError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.response is not None


@dataclass(frozen=True)
class DualFetchResult:
    """Outcomes of both legs for one instrument."""
    ticker: str
    earnings: SourceOutcome
    equities: SourceOutcome


class DualSourceFetcher:
    """
    Issues the earnings and equities calls side by side.

    ============================================================
    FAILURE MODEL
    ============================================================
    - TransportError / UpstreamStatusError are captured per leg
    - Anything else is a bug and propagates
    - asyncio.CancelledError always propagates
    - The run cancel signal aborts both legs; fetch returns None
    ============================================================
    """

    def __init__(self, client: UpstreamClient) -> None:
        self._client = client

    async def _fetch_leg(
        self,
        source: UpstreamSource,
        instrument: TrackedInstrument,
    ) -> SourceOutcome:
        try:
            response = await self._client.get(source, instrument.ticker, instrument.api_key)
        except UpstreamError as e:
            logger.debug(f"[{source.value}] {instrument.ticker} leg failed: {e}")
            return SourceOutcome(source=source, error=e)
        return SourceOutcome(source=source, response=response)

    async def fetch(
        self,
        instrument: TrackedInstrument,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[DualFetchResult]:
        """
        Fetch both payloads for one instrument.

        Both legs are joined before any unexpected error is re-raised,
        so no leg outlives the call.

        Args:
            instrument: Instrument to fetch
            cancel_event: Run-scoped cancel signal; firing it aborts both legs

        Returns:
            DualFetchResult holding one outcome per source, or None if
            the cancel event fired first
        """
        if cancel_event is not None and cancel_event.is_set():
            return None

        logger.debug(f"Fetching stock data | ticker={instrument.ticker}")

        legs = [
            asyncio.ensure_future(self._fetch_leg(UpstreamSource.EARNINGS, instrument)),
            asyncio.ensure_future(self._fetch_leg(UpstreamSource.EQUITIES, instrument)),
        ]
        cancel_waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
        canceled = False

        try:
            pending = set(legs)
            while pending:
                waiters = (pending | {cancel_waiter}) if cancel_waiter is not None else pending
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
                if cancel_event is not None and cancel_event.is_set():
                    canceled = True
                    break
                pending -= done
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            for leg in legs:
                if not leg.done():
                    leg.cancel()
            await asyncio.gather(*legs, return_exceptions=True)

        if canceled:
            logger.info(f"Fetch aborted by cancel signal | ticker={instrument.ticker}")
            return None

        earnings, equities = (leg.result() for leg in legs)

        return DualFetchResult(
            ticker=instrument.ticker,
            earnings=earnings,
            equities=equities,
        )


__all__ = [
    "SourceOutcome",
    "DualFetchResult",
    "DualSourceFetcher",
]
