"""check_x402_status: gateway capabilities and the caller's balances.

Free and read-only; it never creates a payment attempt.
"""

from __future__ import annotations

import importlib.metadata
import logging
import platform
from typing import Any

from tollgate.balance import BalanceOracle, BalanceUnavailableError
from tollgate.config import GateConfig
from tollgate.constants import ToolTier
from tollgate.dispatcher import ToolRegistry
from tollgate.facilitator_client import FacilitatorClient, FacilitatorError
from tollgate.pricing import format_amount

logger = logging.getLogger(__name__)


async def x402_status_tool(
    config: GateConfig,
    facilitator: FacilitatorClient,
    oracle: BalanceOracle,
    principal: str,
) -> dict[str, Any]:
    """Report payment configuration, facilitator reachability and balances.

    Call this when payments aren't working to tell a facilitator outage
    from an empty wallet.

    Returns dict with:
        network/x402Network/chainId: Where payments settle.
        asset: Payment asset address, symbol and decimals.
        payee: Address that receives payments.
        capabilities: Payment kinds the facilitator accepts, or None if unreachable.
        balances: Caller's payment-asset and gas balances ("unavailable" on read failure).
    """
    result: dict[str, Any] = {
        "enabled": True,
        "network": config.network,
        "x402Network": config.x402_network,
        "chainId": config.chain_id,
        "asset": {
            "address": config.resolved_asset_address,
            "symbol": config.asset_symbol,
            "decimals": config.asset_decimals,
        },
        "payee": config.payee_address,
        "principal": principal,
        "facilitator": config.facilitator_url,
    }

    versions: dict[str, str] = {"python": platform.python_version()}
    for pkg in ("tollgate-x402", "eth-account", "mcp"):
        try:
            versions[pkg.replace("-", "_")] = importlib.metadata.version(pkg)
        except importlib.metadata.PackageNotFoundError:
            versions[pkg.replace("-", "_")] = "unknown"
    result["versions"] = versions

    healthy = True
    try:
        supported = await facilitator.get_supported()
        result["capabilities"] = supported.get("kinds", supported)
    except FacilitatorError as e:
        logger.warning("Facilitator /supported failed: %s", e)
        result["capabilities"] = None
        result["facilitatorError"] = str(e)
        healthy = False

    balances: dict[str, str] = {}
    try:
        token = await oracle.spendable_balance(principal)
        balances["token"] = f"{format_amount(token)} {config.asset_symbol} (payment token)"
    except BalanceUnavailableError:
        balances["token"] = "unavailable"
        healthy = False
    try:
        gas = await oracle.gas_balance(principal)
        balances["gas"] = f"{format_amount(gas)} {config.native_symbol}"
    except BalanceUnavailableError:
        balances["gas"] = "unavailable"
    result["balances"] = balances
    result["note"] = f"x402 payments are settled in {config.asset_symbol}, not {config.native_symbol}"

    return {
        "x402": result,
        "message": (
            "x402 payment system is operational" if healthy
            else "x402 payment system is degraded; see x402.facilitatorError and x402.balances"
        ),
    }


def register_status_tool(
    registry: ToolRegistry,
    config: GateConfig,
    facilitator: FacilitatorClient,
    oracle: BalanceOracle,
) -> None:
    @registry.tool("check_x402_status", ToolTier.FREE)
    async def check_x402_status(args: dict[str, Any], principal: str) -> dict[str, Any]:
        return await x402_status_tool(config, facilitator, oracle, principal)
