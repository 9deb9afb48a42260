"""Immutable tool catalog: id → tier, price and input contract.

Malformed entries fail construction at startup; nothing is tolerated at
call time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from tollgate.constants import ToolTier
from tollgate.pricing import format_amount


class CatalogError(Exception):
    """Raised when the catalog (or the handler registry built on it) is malformed."""


class ToolNotFoundError(LookupError):
    """Raised by lookups for an id the catalog does not contain."""

    def __init__(self, tool_id: str) -> None:
        super().__init__(f"Tool '{tool_id}' not found")
        self.tool_id = tool_id


# ---------------------------------------------------------------------------
# ToolDescriptor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolDescriptor:
    """One catalog entry. ``price`` is in the catalog's display unit."""

    id: str
    tier: ToolTier
    price: Decimal
    input_schema: Mapping[str, Any] = field(default_factory=dict)
    name: str = ""
    description: str = ""

    @property
    def is_paid(self) -> bool:
        return self.tier.is_paid

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ToolDescriptor:
        """Build a descriptor, raising CatalogError on any malformed field."""
        tool_id = data.get("id")
        if not tool_id or not isinstance(tool_id, str):
            raise CatalogError(f"Catalog entry missing id: {dict(data)!r}")

        raw_tier = data.get("tier")
        try:
            tier = ToolTier(raw_tier)
        except ValueError as e:
            raise CatalogError(f"Tool '{tool_id}': unknown tier {raw_tier!r}") from e

        raw_price = data.get("price", 0)
        try:
            # str() first so floats like 0.1 keep their written value
            price = Decimal(str(raw_price))
        except InvalidOperation as e:
            raise CatalogError(f"Tool '{tool_id}': price {raw_price!r} is not a number") from e
        if not price.is_finite() or price < 0:
            raise CatalogError(f"Tool '{tool_id}': price must be non-negative, got {raw_price!r}")
        if tier is ToolTier.FREE and price != 0:
            raise CatalogError(f"Tool '{tool_id}': free tools cannot carry a price")
        if tier.is_paid and price == 0:
            raise CatalogError(f"Tool '{tool_id}': {tier.value} tools need a positive price")

        schema = data.get("input_schema", data.get("inputSchema", {"type": "object"}))
        if not isinstance(schema, Mapping):
            raise CatalogError(f"Tool '{tool_id}': input schema must be an object")

        return cls(
            id=tool_id,
            tier=tier,
            price=price,
            input_schema=MappingProxyType(dict(schema)),
            name=str(data.get("name", tool_id)),
            description=str(data.get("description", "")),
        )


def describe(tool: ToolDescriptor, unit: str = "CRO") -> str:
    """Listing description with the tier badge appended."""
    if tool.tier is ToolTier.FREE:
        return f"{tool.description} | FREE"
    return f"{tool.description} | {format_amount(tool.price)} {unit} [x402 Auto-Payment]"


# ---------------------------------------------------------------------------
# ToolCatalog
# ---------------------------------------------------------------------------


class ToolCatalog:
    """Read-only registry of ToolDescriptors keyed by id.

    Safe for any number of concurrent readers: the mapping is frozen at
    construction and descriptors are immutable.
    """

    def __init__(self, tools: list[ToolDescriptor]) -> None:
        by_id: dict[str, ToolDescriptor] = {}
        for tool in tools:
            if tool.id in by_id:
                raise CatalogError(f"Duplicate tool id '{tool.id}'")
            by_id[tool.id] = tool
        self._tools: Mapping[str, ToolDescriptor] = MappingProxyType(by_id)

    @classmethod
    def from_entries(cls, entries: list[Mapping[str, Any]]) -> ToolCatalog:
        return cls([ToolDescriptor.from_dict(e) for e in entries])

    def lookup(self, tool_id: str) -> ToolDescriptor:
        try:
            return self._tools[tool_id]
        except KeyError:
            raise ToolNotFoundError(tool_id) from None

    def price_of(self, tool_id: str) -> Decimal:
        return self.lookup(tool_id).price

    def tools(self, tier: ToolTier | None = None) -> list[ToolDescriptor]:
        return [t for t in self._tools.values() if tier is None or t.tier is tier]

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


# ---------------------------------------------------------------------------
# Default product catalog
# ---------------------------------------------------------------------------


_DECIMAL_PATTERN = r"^[0-9]+(\.[0-9]+)?$"
_ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
_TX_HASH_PATTERN = r"^0x[0-9a-fA-F]{64}$"


def _object(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


DEFAULT_TOOL_ENTRIES: list[dict[str, Any]] = [
    # FREE
    {
        "id": "get_cronos_balance",
        "name": "Get Cronos Balance",
        "description": "Check CRO and token balances for any address",
        "tier": "free",
        "price": "0",
        "input_schema": _object(
            {
                "address": {
                    "type": "string",
                    "pattern": _ADDRESS_PATTERN,
                    "description": "Wallet address to check",
                },
                "token": {
                    "type": "string",
                    "pattern": _ADDRESS_PATTERN,
                    "description": "Token contract address (optional, defaults to CRO)",
                },
            },
            ["address"],
        ),
    },
    {
        "id": "get_gas_price",
        "name": "Get Gas Price",
        "description": "Get current gas prices on Cronos network",
        "tier": "free",
        "price": "0",
        "input_schema": _object({}),
    },
    {
        "id": "get_token_price",
        "name": "Get Token Price",
        "description": "Get current price of tokens",
        "tier": "free",
        "price": "0",
        "input_schema": _object(
            {"symbol": {"type": "string", "description": "Token symbol (e.g., CRO, BTC, ETH)"}},
            ["symbol"],
        ),
    },
    {
        "id": "check_transaction_status",
        "name": "Check Transaction Status",
        "description": "Look up transaction details by hash",
        "tier": "free",
        "price": "0",
        "input_schema": _object(
            {
                "txHash": {
                    "type": "string",
                    "pattern": _TX_HASH_PATTERN,
                    "description": "Transaction hash",
                },
            },
            ["txHash"],
        ),
    },
    {
        "id": "check_x402_status",
        "name": "Check x402 Status",
        "description": "Check x402 payment system status and capabilities",
        "tier": "free",
        "price": "0",
        "input_schema": _object({}),
    },
    # PREMIUM
    {
        "id": "analyze_wallet_portfolio",
        "name": "Analyze Wallet Portfolio",
        "description": "Deep analysis of wallet holdings with diversification metrics",
        "tier": "premium",
        "price": "0.5",
        "input_schema": _object(
            {
                "address": {
                    "type": "string",
                    "pattern": _ADDRESS_PATTERN,
                    "description": "Wallet address to analyze",
                },
            },
            ["address"],
        ),
    },
    {
        "id": "get_historical_price_data",
        "name": "Get Historical Price Data",
        "description": "Historical price charts and OHLCV data",
        "tier": "premium",
        "price": "0.25",
        "input_schema": _object(
            {
                "symbol": {"type": "string", "description": "Token symbol"},
                "days": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 365,
                    "description": "Number of days (7, 30, 90)",
                },
            },
            ["symbol", "days"],
        ),
    },
    {
        "id": "find_arbitrage_opportunities",
        "name": "Find Arbitrage Opportunities",
        "description": "Scan Cronos DEXs for profitable arbitrage routes",
        "tier": "premium",
        "price": "1.0",
        "input_schema": _object(
            {"minProfitUSD": {"type": "number", "description": "Minimum profit threshold in USD"}},
        ),
    },
    {
        "id": "optimize_swap_route",
        "name": "Optimize Swap Route",
        "description": "Find best route for token swaps across Cronos DEXs",
        "tier": "premium",
        "price": "0.4",
        "input_schema": _object(
            {
                "tokenIn": {
                    "type": "string",
                    "pattern": _ADDRESS_PATTERN,
                    "description": "Input token address",
                },
                "tokenOut": {
                    "type": "string",
                    "pattern": _ADDRESS_PATTERN,
                    "description": "Output token address",
                },
                "amountIn": {"type": "string", "pattern": _DECIMAL_PATTERN, "description": "Amount to swap"},
            },
            ["tokenIn", "tokenOut", "amountIn"],
        ),
    },
    # ULTRA
    {
        "id": "execute_token_swap",
        "name": "Execute Token Swap",
        "description": "Execute a token swap on VVS Finance",
        "tier": "ultra",
        "price": "5.0",
        "input_schema": _object(
            {
                "tokenIn": {"type": "string", "pattern": _ADDRESS_PATTERN},
                "tokenOut": {"type": "string", "pattern": _ADDRESS_PATTERN},
                "amountIn": {"type": "string", "pattern": _DECIMAL_PATTERN},
                "slippage": {
                    "type": "number",
                    "description": "Slippage tolerance (e.g., 0.5 for 0.5%)",
                },
            },
            ["tokenIn", "tokenOut", "amountIn"],
        ),
    },
    {
        "id": "auto_compound_rewards",
        "name": "Auto Compound Rewards",
        "description": "Claim and reinvest DeFi yields automatically",
        "tier": "ultra",
        "price": "7.5",
        "input_schema": _object(
            {
                "protocol": {"type": "string", "description": "Protocol name (e.g., VVS)"},
                "poolAddress": {
                    "type": "string",
                    "pattern": _ADDRESS_PATTERN,
                    "description": "Liquidity pool address",
                },
            },
            ["protocol", "poolAddress"],
        ),
    },
]


def default_catalog() -> ToolCatalog:
    return ToolCatalog.from_entries(DEFAULT_TOOL_ENTRIES)
