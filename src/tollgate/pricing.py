"""Catalog price → settlement asset conversion.

Catalog prices are quoted in a display unit (nominally CRO). Settlement
happens in the payment asset's smallest unit (USDC.e has 6 decimals).
The converter is injected into the gateway.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Protocol, runtime_checkable


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert an asset amount to integer base units, truncating toward zero.

    Raises ValueError on negative amounts.
    """
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    scaled = amount.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(base_units: int, decimals: int) -> Decimal:
    """Convert integer base units back to an exact asset amount."""
    return Decimal(base_units).scaleb(-decimals)


def format_amount(amount: Decimal) -> str:
    """Render a Decimal without exponent or trailing zeros ("0.2", "5", "0")."""
    if amount == 0:
        return "0"
    text = format(amount.normalize(), "f")
    return text


@runtime_checkable
class PriceConverter(Protocol):
    """Maps a catalog price to the amount charged in the payment asset."""

    decimals: int

    def convert(self, price: Decimal) -> Decimal: ...

    def base_units(self, price: Decimal) -> int: ...


@dataclass(frozen=True)
class FixedRateConverter:
    """``asset_amount = price * rate``, truncated to the asset's precision.

    The default rate of 1 means one catalog unit is charged as one USDC.e.
    """

    rate: Decimal = Decimal(1)
    decimals: int = 6

    def base_units(self, price: Decimal) -> int:
        return to_base_units(price * self.rate, self.decimals)

    def convert(self, price: Decimal) -> Decimal:
        return from_base_units(self.base_units(price), self.decimals)
