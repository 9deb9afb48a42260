"""Free tools: chain reads and spot prices. No payment, no audit entries."""

from __future__ import annotations

import logging
from typing import Any

from tollgate.constants import NATIVE_DECIMALS, ToolTier
from tollgate.dispatcher import ToolRegistry
from tollgate.pricing import format_amount, from_base_units
from tollgate.rpc_client import ChainRPCClient, hex_to_int
from tollgate.tools.market import MarketDataClient

logger = logging.getLogger(__name__)

_GWEI_DECIMALS = 9


def _transaction_status(receipt: dict[str, Any] | None) -> str:
    if not receipt:
        return "pending"
    return "success" if hex_to_int(receipt.get("status")) == 1 else "failed"


def register_free_tools(
    registry: ToolRegistry,
    rpc: ChainRPCClient,
    market: MarketDataClient,
    native_symbol: str = "CRO",
) -> None:
    """Register get_cronos_balance, get_gas_price, get_token_price, check_transaction_status."""

    @registry.tool("get_cronos_balance", ToolTier.FREE)
    async def get_cronos_balance(args: dict[str, Any], principal: str) -> dict[str, Any]:
        address = args["address"]
        token = args.get("token")
        if token:
            # Token decimals are not looked up; 18 covers the common case
            raw = await rpc.erc20_balance_of(token, address)
        else:
            raw = await rpc.get_balance(address)
        balance = from_base_units(raw, NATIVE_DECIMALS)
        return {
            "address": address,
            "balance": format_amount(balance),
            "token": token or native_symbol,
        }

    @registry.tool("get_gas_price", ToolTier.FREE)
    async def get_gas_price(args: dict[str, Any], principal: str) -> dict[str, Any]:
        wei = await rpc.gas_price()
        return {
            "gwei": format_amount(from_base_units(wei, _GWEI_DECIMALS)),
            "wei": str(wei),
        }

    @registry.tool("get_token_price", ToolTier.FREE)
    async def get_token_price(args: dict[str, Any], principal: str) -> dict[str, Any]:
        return await market.get_ticker(args["symbol"])

    @registry.tool("check_transaction_status", ToolTier.FREE)
    async def check_transaction_status(args: dict[str, Any], principal: str) -> dict[str, Any]:
        tx_hash = args["txHash"]
        tx = await rpc.get_transaction(tx_hash)
        if not tx:
            raise LookupError(f"Transaction not found: {tx_hash}")
        receipt = await rpc.get_transaction_receipt(tx_hash)

        block = tx.get("blockNumber")
        confirmations = 0
        if receipt and block:
            confirmations = max(await rpc.block_number() - hex_to_int(block) + 1, 0)

        return {
            "hash": tx.get("hash", tx_hash),
            "from": tx.get("from"),
            "to": tx.get("to"),
            "value": format_amount(from_base_units(hex_to_int(tx.get("value")), NATIVE_DECIMALS)),
            "gasPrice": format_amount(from_base_units(hex_to_int(tx.get("gasPrice")), _GWEI_DECIMALS)),
            "status": _transaction_status(receipt),
            "blockNumber": hex_to_int(block) if block else None,
            "confirmations": confirmations,
        }
