"""Tests for the Cronos JSON-RPC client."""

from unittest.mock import AsyncMock

import httpx
import pytest

from tollgate.rpc_client import (
    ChainRPCClient,
    ChainRPCConnectionError,
    ChainRPCError,
    ChainRPCResponseError,
    ChainRPCServerError,
    ChainRPCTimeoutError,
    encode_authorization_state,
    encode_balance_of,
    hex_to_int,
)

from conftest import PAYER

USDC = "0xc01efAaF7C5C61bEbFAeb358E1161b537b8bC0e0"


# ---------------------------------------------------------------------------
# ABI helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_encode_balance_of(self) -> None:
        data = encode_balance_of(PAYER)
        assert data.startswith("0x70a08231")
        assert len(data) == 10 + 64
        assert data.endswith(PAYER[2:].lower())

    def test_encode_balance_of_rejects_short(self) -> None:
        with pytest.raises(ValueError, match="Not an address"):
            encode_balance_of("0x1234")

    @pytest.mark.parametrize(
        ("raw", "value"),
        [("0x1a", 26), ("0x0", 0), ("0x", 0), ("", 0), (None, 0)],
    )
    def test_hex_to_int(self, raw, value) -> None:
        assert hex_to_int(raw) == value

    @pytest.mark.parametrize("raw", [26, {"value": "0x1"}, "0xzz"])
    def test_hex_to_int_rejects_non_quantities(self, raw) -> None:
        with pytest.raises(ChainRPCResponseError):
            hex_to_int(raw)

    def test_encode_authorization_state(self) -> None:
        nonce = "0x" + "0f" * 32
        data = encode_authorization_state(PAYER, nonce)
        assert data.startswith("0xe94a0102")
        assert len(data) == 10 + 64 + 64
        assert data[10:74].endswith(PAYER[2:].lower())
        assert data.endswith("0f" * 32)

    def test_encode_authorization_state_rejects_short_nonce(self) -> None:
        with pytest.raises(ValueError, match="32-byte"):
            encode_authorization_state(PAYER, "0x1234")


# ---------------------------------------------------------------------------
# Requests (mocked transport)
# ---------------------------------------------------------------------------


def _rpc_response(status: int = 200, json_data=None, text: str | None = None) -> httpx.Response:
    request = httpx.Request("POST", "https://rpc.example.com")
    if text is not None:
        return httpx.Response(status_code=status, text=text, request=request)
    return httpx.Response(status_code=status, json=json_data, request=request)


def _client_returning(response: httpx.Response) -> ChainRPCClient:
    client = ChainRPCClient("https://rpc.example.com")
    client._client.post = AsyncMock(return_value=response)
    return client


class TestChainRPCRequests:
    @pytest.mark.asyncio
    async def test_payload_shape(self) -> None:
        client = _client_returning(_rpc_response(200, {"jsonrpc": "2.0", "id": 1, "result": "0x152"}))
        assert await client.chain_id() == 338
        call_args = client._client.post.call_args
        assert call_args[0] == ("https://rpc.example.com",)
        payload = call_args[1]["json"]
        assert payload["jsonrpc"] == "2.0"
        assert payload["method"] == "eth_chainId"
        assert payload["params"] == []

    @pytest.mark.asyncio
    async def test_request_ids_increase(self) -> None:
        client = _client_returning(_rpc_response(200, {"result": "0x1"}))
        await client.block_number()
        await client.block_number()
        ids = [c[1]["json"]["id"] for c in client._client.post.call_args_list]
        assert ids == [1, 2]

    @pytest.mark.asyncio
    async def test_get_balance(self) -> None:
        client = _client_returning(_rpc_response(200, {"result": hex(10**18)}))
        assert await client.get_balance(PAYER) == 10**18
        assert client._client.post.call_args[1]["json"]["params"] == [PAYER, "latest"]

    @pytest.mark.asyncio
    async def test_erc20_balance_of(self) -> None:
        client = _client_returning(_rpc_response(200, {"result": "0x" + hex(2_500_000)[2:].rjust(64, "0")}))
        assert await client.erc20_balance_of(USDC, PAYER) == 2_500_000
        call = client._client.post.call_args[1]["json"]
        assert call["method"] == "eth_call"
        assert call["params"][0] == {"to": USDC, "data": encode_balance_of(PAYER)}

    @pytest.mark.asyncio
    async def test_gas_price(self) -> None:
        client = _client_returning(_rpc_response(200, {"result": hex(5_000_000_000_000)}))
        assert await client.gas_price() == 5_000_000_000_000

    @pytest.mark.asyncio
    async def test_authorization_state_used(self) -> None:
        nonce = "0x" + "0f" * 32
        client = _client_returning(_rpc_response(200, {"result": "0x" + "1".rjust(64, "0")}))
        assert await client.authorization_state(USDC, PAYER, nonce) is True
        call = client._client.post.call_args[1]["json"]
        assert call["params"][0] == {"to": USDC, "data": encode_authorization_state(PAYER, nonce)}

    @pytest.mark.asyncio
    async def test_authorization_state_unused(self) -> None:
        client = _client_returning(_rpc_response(200, {"result": "0x" + "0" * 64}))
        assert await client.authorization_state(USDC, PAYER, "0x" + "0f" * 32) is False

    @pytest.mark.asyncio
    async def test_non_hex_result_is_response_error(self) -> None:
        client = _client_returning(_rpc_response(200, {"result": 338}))
        with pytest.raises(ChainRPCResponseError, match="hex quantity"):
            await client.chain_id()

    @pytest.mark.asyncio
    async def test_missing_transaction_is_none(self) -> None:
        client = _client_returning(_rpc_response(200, {"result": None}))
        assert await client.get_transaction("0xdead") is None


# ---------------------------------------------------------------------------
# Exception mapping
# ---------------------------------------------------------------------------


class TestChainRPCExceptionMapping:
    @pytest.mark.asyncio
    async def test_5xx_raises_server_error(self) -> None:
        client = _client_returning(_rpc_response(502, text="bad gateway"))
        with pytest.raises(ChainRPCServerError) as exc_info:
            await client.gas_price()
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_4xx_raises_base_error(self) -> None:
        client = _client_returning(_rpc_response(429, text="slow down"))
        with pytest.raises(ChainRPCError) as exc_info:
            await client.gas_price()
        assert not isinstance(exc_info.value, ChainRPCServerError)
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_rpc_error_object(self) -> None:
        client = _client_returning(_rpc_response(200, {
            "jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "execution reverted"},
        }))
        with pytest.raises(ChainRPCResponseError, match="execution reverted") as exc_info:
            await client.erc20_balance_of(USDC, PAYER)
        assert exc_info.value.code == -32000

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        client = _client_returning(_rpc_response(200, text="<html>"))
        with pytest.raises(ChainRPCResponseError, match="Non-JSON"):
            await client.block_number()

    @pytest.mark.asyncio
    async def test_non_object_body(self) -> None:
        client = _client_returning(_rpc_response(200, [1, 2]))
        with pytest.raises(ChainRPCResponseError, match="Unexpected"):
            await client.block_number()

    @pytest.mark.asyncio
    async def test_connect_error(self) -> None:
        client = ChainRPCClient("https://rpc.example.com")
        client._client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(ChainRPCConnectionError):
            await client.block_number()

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        client = ChainRPCClient("https://rpc.example.com")
        client._client.post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(ChainRPCTimeoutError):
            await client.block_number()

    @pytest.mark.asyncio
    async def test_other_transport_error(self) -> None:
        client = ChainRPCClient("https://rpc.example.com")
        client._client.post = AsyncMock(side_effect=httpx.RemoteProtocolError("reset"))
        with pytest.raises(ChainRPCConnectionError):
            await client.block_number()
