"""
Data Ingestion - Upstream HTTP Client.

============================================================
PURPOSE
============================================================
Shared aiohttp client for the upstream stock data provider.

- One pooled ClientSession for every call of a run
- Per-call timeout, independent between calls
- Raw body capture with best-effort "success" flag decoding
- Maps transport and status failures to the error taxonomy

============================================================
DESIGN PRINCIPLES
============================================================
- No retries at this layer
- No payload interpretation beyond the envelope flag
- Cancellation of the caller propagates into the request

============================================================
"""

import asyncio
import json
import logging
import time
from typing import Dict, Optional

import aiohttp

from core.exceptions import TransportError, UpstreamStatusError
from data_ingestion.types import RawSourceResponse, RefreshConfig, UpstreamSource


logger = logging.getLogger("collector.upstream")


def decode_success_flag(body: bytes) -> Optional[bool]:
    """
    Read the top-level "success" flag of a JSON envelope.

    Never raises: anything that is not a JSON object yields None, and
    an object without the key yields False.
    """
    if not body:
        return None
    try:
        envelope = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(envelope, dict):
        return None
    success = envelope.get("success", False)
    if success is None:
        return False
    if not isinstance(success, bool):
        return None
    return success


class UpstreamClient:
    """
    HTTP client for the two upstream endpoints.

    Owns its session unless one is injected. Use as an async context
    manager, or call close() when done.
    """

    def __init__(
        self,
        config: RefreshConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None

    @property
    def config(self) -> RefreshConfig:
        return self._config

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the pooled HTTP session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self._config.max_connections,
                limit_per_host=self._config.max_connections_per_host,
                keepalive_timeout=self._config.keepalive_timeout_seconds,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def get(
        self,
        source: UpstreamSource,
        ticker: str,
        api_key: str,
    ) -> RawSourceResponse:
        """
        Fetch one endpoint for one instrument.

        Args:
            source: Which endpoint to call
            ticker: Instrument symbol
            api_key: Per-instrument credential

        Returns:
            Raw response for a 2xx status

        Raises:
            TransportError: Network failure or timeout
            UpstreamStatusError: Non-2xx status (raw response attached)
        """
        url = self._config.endpoint(source)
        params = {"symbol": ticker, "market": self._config.market_code}
        headers = {
            "Accept": "application/json",
            self._config.api_key_header: api_key,
        }
        timeout = self._config.request_timeout_seconds

        start_time = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._request(source, url, params, headers),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                message=f"{source.value} request timed out after {timeout}s",
                source=source.value,
                context={"ticker": ticker, "url": url},
                cause=e,
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(
                message=f"{source.value} connection error: {e}",
                source=source.value,
                context={"ticker": ticker, "url": url},
                cause=e,
            ) from e

        latency_ms = (time.monotonic() - start_time) * 1000
        logger.debug(
            f"[{source.value}] {ticker} -> {response.status_code} in {latency_ms:.1f}ms"
        )

        if not response.is_ok:
            raise UpstreamStatusError(
                source=source.value,
                status_code=response.status_code,
                body=response.body.decode("utf-8", errors="replace"),
                response=response,
            )

        return response

    async def _request(
        self,
        source: UpstreamSource,
        url: str,
        params: Dict[str, str],
        headers: Dict[str, str],
    ) -> RawSourceResponse:
        session = await self._get_session()
        async with session.get(url, params=params, headers=headers) as response:
            body = await response.read()
            first_values: Dict[str, str] = {}
            for key, value in response.headers.items():
                first_values.setdefault(key, value)
            return RawSourceResponse(
                source=source,
                status_code=response.status,
                body=body,
                headers=first_values,
                success=decode_success_flag(body),
            )

    async def close(self) -> None:
        """Close the session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "UpstreamClient",
    "decode_success_flag",
]
