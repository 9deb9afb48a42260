"""Constants for x402 tool-call gating on Cronos."""

from enum import Enum


AUTHORIZATION_VALIDITY_SECS = 3600  # one hour from signing
X402_VERSION = 1
X402_SCHEME = "exact"

# Marker stored in place of a tx hash when settlement moved funds but
# the facilitator never returned a reference.
UNVERIFIED_REFERENCE_MARKER = "funds-moved-reference-unavailable"


class ToolTier(str, Enum):
    """Access tiers. Only FREE bypasses the payment gate."""

    FREE = "free"
    PREMIUM = "premium"
    ULTRA = "ultra"

    @property
    def is_paid(self) -> bool:
        return self is not ToolTier.FREE


# Per-network chain parameters. Asset addresses are the bridged USDC.e
# token the facilitator settles in, not native CRO.
NETWORKS: dict[str, dict[str, object]] = {
    "mainnet": {
        "x402_network": "cronos-mainnet",
        "chain_id": 25,
        "name": "Cronos Mainnet",
        "rpc_url": "https://evm.cronos.org",
        "explorer_tx_url": "https://explorer.cronos.org/tx/",
        "asset_address": "0xf951eC28187D9E5Ca673Da8FE6757E6f0Be5F77C",
        "native_symbol": "CRO",
    },
    "testnet": {
        "x402_network": "cronos-testnet",
        "chain_id": 338,
        "name": "Cronos Testnet",
        "rpc_url": "https://evm-t3.cronos.org",
        "explorer_tx_url": "https://explorer.cronos.org/testnet/tx/",
        "asset_address": "0xc01efAaF7C5C61bEbFAeb358E1161b537b8bC0e0",
        "native_symbol": "TCRO",
    },
}

DEFAULT_FACILITATOR_URL = "https://facilitator.cronoslabs.org/v2/x402"
DEFAULT_ASSET_SYMBOL = "USDC.e"
DEFAULT_ASSET_DECIMALS = 6
DEFAULT_ASSET_EIP712_NAME = "Bridged USDC (Stargate)"
DEFAULT_ASSET_EIP712_VERSION = "1"

NATIVE_DECIMALS = 18
