"""Premium tools: wallet and market analytics.

Analytics beyond the live CRO balance and price are deterministic demo
data; route computation and price history sourcing are out of scope.
"""

from __future__ import annotations

import random
import time
from decimal import Decimal
from typing import Any

from tollgate.constants import NATIVE_DECIMALS, ToolTier
from tollgate.dispatcher import ToolRegistry
from tollgate.pricing import format_amount, from_base_units
from tollgate.rpc_client import ChainRPCClient
from tollgate.tools.market import MarketDataClient

SCANNED_DEXES = ("VVS Finance", "MM Finance", "Vona")

# Cronos mainnet USDC, the usual intermediate hop
_USDC_HOP = "0xc21223249CA28397B4B6541dfFaEcC539BfF0c59"

_DAY_SECS = 86_400


def _risk_level(total_usd: Decimal) -> str:
    if total_usd > 10_000:
        return "high"
    if total_usd > 1_000:
        return "medium"
    return "low"


def portfolio_report(balance: Decimal, price: Decimal, symbol: str = "CRO") -> dict[str, Any]:
    """Single-asset portfolio summary with diversification hints."""
    value = (balance * price).quantize(Decimal("0.01"))
    assets = [{
        "symbol": symbol,
        "balance": format_amount(balance),
        "valueUSD": float(value),
        "percentage": 100,
    }]
    recommendations = ["Consider diversifying into stablecoins or other assets"]
    if value > 0:
        recommendations.append(f"High concentration in {symbol} - consider rebalancing")
    return {
        "totalValueUSD": float(value),
        "assets": assets,
        "diversificationScore": 70 if len(assets) > 1 else 30,
        "riskLevel": _risk_level(value),
        "recommendations": recommendations,
    }


def price_history(symbol: str, days: int, now: int | None = None) -> dict[str, Any]:
    """Daily OHLCV series; the same symbol and window always yield the same series."""
    end = int(time.time()) if now is None else now
    rng = random.Random(f"{symbol.upper()}:{days}")
    price = 0.10
    points = []
    for i in range(days, 0, -1):
        price *= 1 + (rng.random() - 0.5) * 0.01
        points.append({
            "time": end - i * _DAY_SECS,
            "open": round(price, 6),
            "high": round(price * 1.02, 6),
            "low": round(price * 0.98, 6),
            "close": round(price * (1 + (rng.random() - 0.5) * 0.005), 6),
            "volume": rng.randrange(1_000_000),
        })
    return {
        "symbol": symbol,
        "period": f"{days} days",
        "dataPoints": len(points),
        "data": points,
    }


def arbitrage_scan(min_profit_usd: float, base_price: float | None) -> dict[str, Any]:
    opportunities = [
        {
            "route": "CRO -> USDC -> CRO",
            "buyDex": "VVS Finance",
            "sellDex": "MM Finance",
            "expectedProfit": "2.50",
            "confidence": 0.85,
        },
    ]
    profitable = [op for op in opportunities if float(op["expectedProfit"]) >= min_profit_usd]
    if not profitable:
        return {
            "found": False,
            "message": "No arbitrage opportunities found meeting minimum profit threshold.",
            "scannedDEXs": list(SCANNED_DEXES),
        }
    return {
        "found": True,
        "opportunities": profitable,
        "baseAssetPrice": base_price,
        "scannedDEXs": list(SCANNED_DEXES),
    }


def swap_route(token_in: str, token_out: str, amount_in: str) -> dict[str, Any]:
    amount = Decimal(amount_in)
    return {
        "input": {"token": token_in, "amount": amount_in},
        "bestRoute": {
            "protocol": "VVS Finance",
            "path": [token_in, _USDC_HOP, token_out],
            "version": "v2",
            "estimatedGas": "150000",
        },
        "expectedOutput": format_amount(amount * Decimal("0.98")),
        "priceImpact": "0.45%",
        "alternativeRoutes": [
            {"protocol": "MM Finance", "expectedOutput": format_amount(amount * Decimal("0.97"))},
        ],
    }


def register_premium_tools(
    registry: ToolRegistry,
    rpc: ChainRPCClient,
    market: MarketDataClient,
) -> None:
    @registry.tool("analyze_wallet_portfolio", ToolTier.PREMIUM)
    async def analyze_wallet_portfolio(args: dict[str, Any], principal: str) -> dict[str, Any]:
        balance = from_base_units(await rpc.get_balance(args["address"]), NATIVE_DECIMALS)
        ticker = await market.get_ticker("CRO")
        return portfolio_report(balance, Decimal(str(ticker["price"])))

    @registry.tool("get_historical_price_data", ToolTier.PREMIUM)
    async def get_historical_price_data(args: dict[str, Any], principal: str) -> dict[str, Any]:
        return price_history(args["symbol"], int(args["days"]))

    @registry.tool("find_arbitrage_opportunities", ToolTier.PREMIUM)
    async def find_arbitrage_opportunities(args: dict[str, Any], principal: str) -> dict[str, Any]:
        ticker = await market.get_ticker("CRO")
        return arbitrage_scan(float(args.get("minProfitUSD", 0)), ticker["price"])

    @registry.tool("optimize_swap_route", ToolTier.PREMIUM)
    async def optimize_swap_route(args: dict[str, Any], principal: str) -> dict[str, Any]:
        return swap_route(args["tokenIn"], args["tokenOut"], args["amountIn"])
