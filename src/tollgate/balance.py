"""BalanceOracle: spendable and gas balances for a principal.

All queries are read-only. Transport failures surface as
``BalanceUnavailableError``; callers must never read that as "enough".
"""

from __future__ import annotations

import logging
from decimal import Decimal

from tollgate.constants import NATIVE_DECIMALS
from tollgate.pricing import from_base_units
from tollgate.rpc_client import ChainRPCClient, ChainRPCError

logger = logging.getLogger(__name__)


class BalanceUnavailableError(Exception):
    """A balance read failed; the true balance is unknown."""


class BalanceOracle:
    """Adapter over the chain RPC client.

    ``spendable_balance`` is the payment asset (USDC.e) balance in asset
    units; ``gas_balance`` is the native coin balance in whole coins.
    """

    def __init__(self, rpc: ChainRPCClient, asset_address: str, asset_decimals: int) -> None:
        self._rpc = rpc
        self._asset_address = asset_address
        self._asset_decimals = asset_decimals

    async def spendable_balance(self, principal: str) -> Decimal:
        try:
            raw = await self._rpc.erc20_balance_of(self._asset_address, principal)
        except (ChainRPCError, ValueError) as e:
            logger.warning("Spendable balance read failed for %s: %s", principal, e)
            raise BalanceUnavailableError(str(e)) from e
        return from_base_units(raw, self._asset_decimals)

    async def gas_balance(self, principal: str) -> Decimal:
        try:
            raw = await self._rpc.get_balance(principal)
        except (ChainRPCError, ValueError) as e:
            logger.warning("Gas balance read failed for %s: %s", principal, e)
            raise BalanceUnavailableError(str(e)) from e
        return from_base_units(raw, NATIVE_DECIMALS)

    async def authorization_used(self, principal: str, nonce: str) -> bool | None:
        """Whether the asset has consumed this transfer authorization.

        None when the chain could not be asked.
        """
        try:
            return await self._rpc.authorization_state(self._asset_address, principal, nonce)
        except (ChainRPCError, ValueError) as e:
            logger.warning("Authorization state read failed for %s (nonce %s): %s", principal, nonce, e)
            return None
