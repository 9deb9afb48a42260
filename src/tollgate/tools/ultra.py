"""Ultra tools: prepare on-chain actions for the caller to approve.

Nothing here signs or broadcasts a transaction.
"""

from __future__ import annotations

from typing import Any

from tollgate.constants import ToolTier
from tollgate.dispatcher import ToolRegistry

DEFAULT_SLIPPAGE_PERCENT = 0.5
SWAP_DEADLINE_SECS = 20 * 60


def prepared_swap(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "message": "Swap ready for execution",
        "requiresApproval": True,
        "protocol": "VVS Finance",
        "tokenIn": args["tokenIn"],
        "tokenOut": args["tokenOut"],
        "amountIn": args["amountIn"],
        "slippagePercent": args.get("slippage", DEFAULT_SLIPPAGE_PERCENT),
        "deadlineSecs": SWAP_DEADLINE_SECS,
    }


def prepared_compound(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "message": "Auto-compound ready",
        "requiresApproval": True,
        "protocol": args["protocol"],
        "poolAddress": args["poolAddress"],
        "action": "Compound",
    }


def register_ultra_tools(registry: ToolRegistry) -> None:
    @registry.tool("execute_token_swap", ToolTier.ULTRA)
    async def execute_token_swap(args: dict[str, Any], principal: str) -> dict[str, Any]:
        return prepared_swap(args)

    @registry.tool("auto_compound_rewards", ToolTier.ULTRA)
    async def auto_compound_rewards(args: dict[str, Any], principal: str) -> dict[str, Any]:
        return prepared_compound(args)
