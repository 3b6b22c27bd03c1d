"""
Tests for the upstream client and the dual-source fetcher.

Uses a local aiohttp test server for the HTTP paths.
"""

import asyncio
import json
from typing import Awaitable, Callable

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from core.exceptions import TransportError, UpstreamStatusError
from data_ingestion.collectors.base import UpstreamClient, decode_success_flag
from data_ingestion.collectors.dual_source import DualSourceFetcher
from data_ingestion.types import RefreshConfig, TrackedInstrument, UpstreamSource


Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


async def start_server(earnings: Handler, equities: Handler) -> TestServer:
    app = web.Application()
    app.router.add_get("/v2/earnings", earnings)
    app.router.add_get("/v2/equities", equities)
    server = TestServer(app)
    await server.start_server()
    return server


def config_for(server: TestServer, **overrides) -> RefreshConfig:
    return RefreshConfig(base_url=str(server.make_url("/v2")), **overrides)


async def ok_handler(request: web.Request) -> web.Response:
    return web.json_response({
        "success": True,
        "symbol": request.query.get("symbol"),
        "echo": {
            "market": request.query.get("market"),
            "api_key": request.headers.get("X-API-Key"),
            "accept": request.headers.get("Accept"),
        },
    })


async def unavailable_handler(request: web.Request) -> web.Response:
    return web.Response(status=503, text="maintenance")


async def slow_handler(request: web.Request) -> web.Response:
    await asyncio.sleep(1)
    return web.json_response({"success": True})


# ============================================================
# SUCCESS FLAG
# ============================================================

class TestDecodeSuccessFlag:

    def test_flag_values(self):
        assert decode_success_flag(b'{"success": true}') is True
        assert decode_success_flag(b'{"success": false}') is False
        assert decode_success_flag(b'{"success": null}') is False
        assert decode_success_flag(b'{"data": {}}') is False

    def test_never_raises(self):
        assert decode_success_flag(b"") is None
        assert decode_success_flag(b"not json") is None
        assert decode_success_flag(b"[true]") is None
        assert decode_success_flag(b'{"success": "yes"}') is None


# ============================================================
# UPSTREAM CLIENT
# ============================================================

class TestUpstreamClient:

    @pytest.mark.asyncio
    async def test_request_shape(self):
        server = await start_server(ok_handler, ok_handler)
        try:
            async with UpstreamClient(config_for(server)) as client:
                response = await client.get(UpstreamSource.EARNINGS, "BBCA", "key-1")
        finally:
            await server.close()

        body = json.loads(response.body)
        assert response.status_code == 200
        assert response.source == UpstreamSource.EARNINGS
        assert response.success is True
        assert body["symbol"] == "BBCA"
        assert body["echo"] == {"market": "id-id", "api_key": "key-1", "accept": "application/json"}
        assert response.headers["Content-Type"].startswith("application/json")

    @pytest.mark.asyncio
    async def test_non_2xx_raises_status_error(self):
        server = await start_server(unavailable_handler, ok_handler)
        try:
            async with UpstreamClient(config_for(server)) as client:
                with pytest.raises(UpstreamStatusError) as exc_info:
                    await client.get(UpstreamSource.EARNINGS, "BBCA", "key-1")
        finally:
            await server.close()

        error = exc_info.value
        assert error.status_code == 503
        assert str(error) == "external request failed with status 503: maintenance"
        assert error.response is not None
        assert error.response.body == b"maintenance"

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error(self):
        server = await start_server(slow_handler, ok_handler)
        try:
            config = config_for(server, request_timeout_seconds=0.1)
            async with UpstreamClient(config) as client:
                with pytest.raises(TransportError) as exc_info:
                    await client.get(UpstreamSource.EARNINGS, "BBCA", "key-1")
        finally:
            await server.close()

        assert "timed out" in str(exc_info.value)
        assert exc_info.value.source == "earnings"

    @pytest.mark.asyncio
    async def test_connection_refused_raises_transport_error(self):
        config = RefreshConfig(base_url="http://127.0.0.1:1/v2", request_timeout_seconds=2)
        async with UpstreamClient(config) as client:
            with pytest.raises(TransportError):
                await client.get(UpstreamSource.EQUITIES, "BBCA", "key-1")


# ============================================================
# DUAL SOURCE FETCHER
# ============================================================

class TestDualSourceFetcher:

    @pytest.mark.asyncio
    async def test_both_legs_succeed(self):
        server = await start_server(ok_handler, ok_handler)
        try:
            async with UpstreamClient(config_for(server)) as client:
                result = await DualSourceFetcher(client).fetch(TrackedInstrument("BBCA", "key-1"))
        finally:
            await server.close()

        assert result.ticker == "BBCA"
        assert result.earnings.ok
        assert result.equities.ok
        assert result.earnings.source == UpstreamSource.EARNINGS
        assert result.equities.source == UpstreamSource.EQUITIES

    @pytest.mark.asyncio
    async def test_one_leg_failing_does_not_affect_the_other(self):
        server = await start_server(unavailable_handler, ok_handler)
        try:
            async with UpstreamClient(config_for(server)) as client:
                result = await DualSourceFetcher(client).fetch(TrackedInstrument("BBCA", "key-1"))
        finally:
            await server.close()

        assert not result.earnings.ok
        assert isinstance(result.earnings.error, UpstreamStatusError)
        assert result.earnings.response is None
        assert result.equities.ok
        assert json.loads(result.equities.response.body)["symbol"] == "BBCA"

    @pytest.mark.asyncio
    async def test_slow_leg_times_out_alone(self):
        server = await start_server(ok_handler, slow_handler)
        try:
            config = config_for(server, request_timeout_seconds=0.2)
            async with UpstreamClient(config) as client:
                result = await DualSourceFetcher(client).fetch(TrackedInstrument("BBCA", "key-1"))
        finally:
            await server.close()

        assert result.earnings.ok
        assert isinstance(result.equities.error, TransportError)

    @pytest.mark.asyncio
    async def test_legs_run_concurrently(self, fake_client):
        started = []
        release = asyncio.Event()

        async def blocking_get(source, ticker, api_key):
            started.append(source)
            if len(started) == 2:
                release.set()
            await asyncio.wait_for(release.wait(), timeout=1)
            return await original_get(source, ticker, api_key)

        original_get = fake_client.get
        fake_client.get = blocking_get
        fake_client.set(UpstreamSource.EARNINGS, "BBCA", {"success": True})
        fake_client.set(UpstreamSource.EQUITIES, "BBCA", {"success": True})

        result = await DualSourceFetcher(fake_client).fetch(TrackedInstrument("BBCA", "key-1"))

        assert set(started) == {UpstreamSource.EARNINGS, UpstreamSource.EQUITIES}
        assert result.earnings.ok and result.equities.ok

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, fake_client):
        fake_client.set(UpstreamSource.EARNINGS, "BBCA", RuntimeError("bug"))
        fake_client.set(UpstreamSource.EQUITIES, "BBCA", {"success": True})

        with pytest.raises(RuntimeError):
            await DualSourceFetcher(fake_client).fetch(TrackedInstrument("BBCA", "key-1"))

    @pytest.mark.asyncio
    async def test_unexpected_error_waits_for_sibling_leg(self, fake_client):
        finished = []

        async def get(source, ticker, api_key):
            if source == UpstreamSource.EARNINGS:
                raise RuntimeError("bug")
            await asyncio.sleep(0.05)
            finished.append(source)
            return await original_get(source, ticker, api_key)

        original_get = fake_client.get
        fake_client.get = get
        fake_client.set(UpstreamSource.EQUITIES, "BBCA", {"success": True})

        with pytest.raises(RuntimeError):
            await DualSourceFetcher(fake_client).fetch(TrackedInstrument("BBCA", "key-1"))

        assert finished == [UpstreamSource.EQUITIES]


class TestFetchCancellation:

    @pytest.mark.asyncio
    async def test_cancel_signal_aborts_both_legs(self, fake_client):
        entered = []
        cancelled = []

        async def hanging_get(source, ticker, api_key):
            entered.append(source)
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.append(source)
                raise

        fake_client.get = hanging_get
        cancel_event = asyncio.Event()
        fetch = asyncio.create_task(
            DualSourceFetcher(fake_client).fetch(TrackedInstrument("BBCA", "key-1"), cancel_event)
        )
        for _ in range(100):
            if len(entered) == 2:
                break
            await asyncio.sleep(0.01)

        cancel_event.set()
        result = await asyncio.wait_for(fetch, timeout=0.5)

        assert result is None
        assert set(cancelled) == {UpstreamSource.EARNINGS, UpstreamSource.EQUITIES}

    @pytest.mark.asyncio
    async def test_cancel_signal_already_set(self, fake_client):
        cancel_event = asyncio.Event()
        cancel_event.set()

        result = await DualSourceFetcher(fake_client).fetch(
            TrackedInstrument("BBCA", "key-1"), cancel_event,
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_unset_cancel_signal_does_not_interfere(self, fake_client):
        fake_client.set(UpstreamSource.EARNINGS, "BBCA", {"success": True})
        fake_client.set(UpstreamSource.EQUITIES, "BBCA", {"success": True})

        result = await DualSourceFetcher(fake_client).fetch(
            TrackedInstrument("BBCA", "key-1"), asyncio.Event(),
        )

        assert result.earnings.ok and result.equities.ok
