"""Async JSON-RPC client for a Cronos (EVM) node."""

from __future__ import annotations

import itertools
from typing import Any

import httpx


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class ChainRPCError(Exception):
    """Base exception for chain RPC operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChainRPCServerError(ChainRPCError):
    """HTTP 5xx from the node (retryable)."""


class ChainRPCConnectionError(ChainRPCError):
    """Network/DNS failure (retryable)."""


class ChainRPCTimeoutError(ChainRPCError):
    """Request timeout (retryable)."""


class ChainRPCResponseError(ChainRPCError):
    """JSON-RPC level error object, or a malformed response body."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


# ---------------------------------------------------------------------------
# ABI helpers
# ---------------------------------------------------------------------------

# keccak256("balanceOf(address)")[:4]
_BALANCE_OF_SELECTOR = "0x70a08231"
# keccak256("authorizationState(address,bytes32)")[:4], EIP-3009
_AUTHORIZATION_STATE_SELECTOR = "0xe94a0102"


def _address_word(address: str) -> str:
    addr = address.lower().removeprefix("0x")
    if len(addr) != 40:
        raise ValueError(f"Not an address: {address!r}")
    return addr.rjust(64, "0")


def encode_balance_of(owner: str) -> str:
    """Calldata for ERC-20 ``balanceOf(owner)``."""
    return _BALANCE_OF_SELECTOR + _address_word(owner)


def encode_authorization_state(authorizer: str, nonce: str) -> str:
    """Calldata for EIP-3009 ``authorizationState(authorizer, nonce)``."""
    word = nonce.lower().removeprefix("0x")
    if len(word) != 64:
        raise ValueError(f"Not a 32-byte nonce: {nonce!r}")
    return _AUTHORIZATION_STATE_SELECTOR + _address_word(authorizer) + word


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC quantity ("0x1a"); empty results ("0x") decode to 0.

    Anything else a node might send back (numbers, objects, non-hex text)
    raises ChainRPCResponseError.
    """
    if value is None or value in ("0x", ""):
        return 0
    if not isinstance(value, str):
        raise ChainRPCResponseError(f"Expected a hex quantity, got {type(value).__name__}")
    try:
        return int(value, 16)
    except ValueError as exc:
        raise ChainRPCResponseError(f"Malformed hex quantity: {value!r}") from exc


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ChainRPCClient:
    """Async client for the standard ``eth_*`` JSON-RPC surface.

    Takes its endpoint explicitly.
    All quantities are returned as Python ints (wei / token base units).
    """

    def __init__(self, rpc_url: str, timeout: float = 15.0) -> None:
        self._rpc_url = rpc_url
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=5.0),
            headers={"Content-Type": "application/json"},
        )

    # -- internal request dispatcher -----------------------------------------

    async def _call(self, method: str, params: list[Any]) -> Any:
        """Send one JSON-RPC request and map errors to the ChainRPC hierarchy."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self._client.post(self._rpc_url, json=payload)
        except httpx.ConnectError as exc:
            raise ChainRPCConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise ChainRPCTimeoutError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ChainRPCConnectionError(str(exc)) from exc

        if response.status_code >= 500:
            raise ChainRPCServerError(response.text, status_code=response.status_code)
        if response.status_code >= 400:
            raise ChainRPCError(response.text, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise ChainRPCResponseError(f"Non-JSON response to {method}") from exc
        if not isinstance(body, dict):
            raise ChainRPCResponseError(f"Unexpected response shape for {method}")

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                raise ChainRPCResponseError(str(error.get("message", error)), code=error.get("code"))
            raise ChainRPCResponseError(str(error))
        return body.get("result")

    # -- public API methods ---------------------------------------------------

    async def chain_id(self) -> int:
        return hex_to_int(await self._call("eth_chainId", []))

    async def block_number(self) -> int:
        return hex_to_int(await self._call("eth_blockNumber", []))

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        return hex_to_int(await self._call("eth_getBalance", [address, "latest"]))

    async def erc20_balance_of(self, token: str, owner: str) -> int:
        """ERC-20 balance in the token's base units."""
        result = await self._call(
            "eth_call",
            [{"to": token, "data": encode_balance_of(owner)}, "latest"],
        )
        return hex_to_int(result)

    async def authorization_state(self, token: str, authorizer: str, nonce: str) -> bool:
        """True once the token has consumed (or cancelled) ``nonce`` for ``authorizer``."""
        result = await self._call(
            "eth_call",
            [{"to": token, "data": encode_authorization_state(authorizer, nonce)}, "latest"],
        )
        return hex_to_int(result) != 0

    async def gas_price(self) -> int:
        """Current gas price in wei."""
        return hex_to_int(await self._call("eth_gasPrice", []))

    async def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        return await self._call("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return await self._call("eth_getTransactionReceipt", [tx_hash])

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> ChainRPCClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
