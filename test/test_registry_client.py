#!/usr/bin/env python3
"""Tests for the cross-chain registry client."""

import httpx
import pytest

from zetaflow.clients.registry_client import RegistryClient
from zetaflow.errors import SearchErrorType, SourceError

BASE_URL = "https://registry.test/lcd/v1/public"
TX_HASH = "0x" + "11" * 32
CCTX = {"CrossChainTx": {"index": TX_HASH, "cctx_status": {"status": "OutboundMined"}}}


def client_for(handler) -> RegistryClient:
    return RegistryClient(BASE_URL + "/", "testnet", transport=httpx.MockTransport(handler))


class TestGetByHash:
    """Tests for RegistryClient.get_by_hash()."""

    @pytest.mark.asyncio
    async def test_returns_record(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=CCTX)

        record = await client_for(handler).get_by_hash(TX_HASH)

        assert record == CCTX
        assert seen == [f"{BASE_URL}/zeta-chain/crosschain/cctx/{TX_HASH}"]

    @pytest.mark.asyncio
    async def test_404_is_none(self):
        client = client_for(lambda request: httpx.Response(404, json={"code": 5, "message": "not found"}))

        assert await client.get_by_hash(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_not_found_body_on_server_error_is_none(self):
        body = {"code": 2, "message": "cctx not found: key not found"}
        client = client_for(lambda request: httpx.Response(500, json=body))

        assert await client.get_by_hash(TX_HASH) is None

    @pytest.mark.parametrize("status, expected", [
        (400, SearchErrorType.INVALID_INPUT),
        (422, SearchErrorType.INVALID_INPUT),
        (429, SearchErrorType.RATE_LIMITED),
        (502, SearchErrorType.NETWORK_ERROR),
        (503, SearchErrorType.NETWORK_ERROR),
    ])
    @pytest.mark.asyncio
    async def test_http_errors(self, status, expected):
        client = client_for(lambda request: httpx.Response(status, text="upstream trouble"))

        with pytest.raises(SourceError) as exc_info:
            await client.get_by_hash(TX_HASH)

        assert exc_info.value.error_type == expected
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(SourceError) as exc_info:
            await client_for(handler).get_by_hash(TX_HASH)

        assert exc_info.value.error_type == SearchErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SourceError) as exc_info:
            await client_for(handler).get_by_hash(TX_HASH)

        assert exc_info.value.error_type == SearchErrorType.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        client = client_for(lambda request: httpx.Response(200, json={"unexpected": True}))

        with pytest.raises(SourceError) as exc_info:
            await client.get_by_hash(TX_HASH)

        assert exc_info.value.error_type == SearchErrorType.UNKNOWN


class TestHealth:
    """Tests for RegistryClient.is_healthy()."""

    @pytest.mark.asyncio
    async def test_healthy(self):
        def handler(request):
            assert request.url.path.endswith("/node_info")
            return httpx.Response(200, json={"default_node_info": {}})

        assert await client_for(handler).is_healthy()

    @pytest.mark.asyncio
    async def test_unhealthy_on_error_status(self):
        assert not await client_for(lambda request: httpx.Response(503)).is_healthy()

    @pytest.mark.asyncio
    async def test_unhealthy_on_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert not await client_for(handler).is_healthy()


def test_registry_url_required():
    with pytest.raises(ValueError, match="Registry URL is required"):
        RegistryClient("", "testnet")
