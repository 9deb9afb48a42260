"""Async client for the Crypto.com public market-data ticker."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

DEFAULT_MARKET_URL = "https://api.crypto.com/v2/public"


class MarketDataError(Exception):
    """Ticker lookup failed or returned nothing usable."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MarketDataClient:
    """Spot prices by symbol, quoted against USD."""

    def __init__(self, base_url: str = DEFAULT_MARKET_URL, timeout: float = 10.0) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout, connect=5.0),
        )

    async def get_ticker(self, symbol: str) -> dict[str, Any]:
        """Return ``{"symbol", "price", "change24h"}`` for ``{symbol}_USD``.

        ``price`` is the best ask; ``change24h`` the exchange's 24h change.
        """
        instrument = f"{symbol.upper()}_USD"
        try:
            response = await self._client.get(
                "/get-ticker", params={"instrument_name": instrument},
            )
        except httpx.HTTPError as exc:
            raise MarketDataError(f"Ticker request for {instrument} failed: {exc}") from exc

        if response.status_code >= 400:
            raise MarketDataError(response.text, status_code=response.status_code)

        try:
            rows = response.json()["result"]["data"]
            row = rows[0] if isinstance(rows, list) else rows
            price = Decimal(str(row["a"]))
            change = Decimal(str(row.get("c", "0")))
        except (ValueError, KeyError, IndexError, TypeError, InvalidOperation) as exc:
            raise MarketDataError(f"No usable ticker for {instrument}") from exc

        return {"symbol": symbol.upper(), "price": float(price), "change24h": float(change)}

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> MarketDataClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
