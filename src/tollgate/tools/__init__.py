"""Tool handlers for the default catalog."""

from __future__ import annotations

from tollgate.balance import BalanceOracle
from tollgate.config import GateConfig
from tollgate.dispatcher import ToolRegistry
from tollgate.facilitator_client import FacilitatorClient
from tollgate.rpc_client import ChainRPCClient
from tollgate.tools.free import register_free_tools
from tollgate.tools.market import MarketDataClient
from tollgate.tools.premium import register_premium_tools
from tollgate.tools.status import register_status_tool
from tollgate.tools.ultra import register_ultra_tools


def build_registry(
    config: GateConfig,
    rpc: ChainRPCClient,
    oracle: BalanceOracle,
    facilitator: FacilitatorClient,
    market: MarketDataClient,
) -> ToolRegistry:
    """Registry covering every tool in ``DEFAULT_TOOL_ENTRIES``."""
    registry = ToolRegistry()
    register_free_tools(registry, rpc, market, native_symbol=config.native_symbol)
    register_status_tool(registry, config, facilitator, oracle)
    register_premium_tools(registry, rpc, market)
    register_ultra_tools(registry)
    return registry


__all__ = ["MarketDataClient", "build_registry"]
