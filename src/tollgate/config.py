"""Gate configuration as a single frozen dataclass.

Built once at startup (``GateConfig.from_env()`` or by the host
application) and passed explicitly to every component. Nothing else in
the package reads process environment.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dotenv import find_dotenv, load_dotenv

from tollgate.constants import (
    AUTHORIZATION_VALIDITY_SECS,
    DEFAULT_ASSET_DECIMALS,
    DEFAULT_ASSET_EIP712_NAME,
    DEFAULT_ASSET_EIP712_VERSION,
    DEFAULT_ASSET_SYMBOL,
    DEFAULT_FACILITATOR_URL,
    NETWORKS,
)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised at startup when the gate cannot be configured safely."""


def is_address(value: str | None) -> bool:
    """True for a 0x-prefixed 20-byte hex address (checksum not enforced)."""
    return bool(value) and bool(_ADDRESS_RE.match(value or ""))


@dataclass(frozen=True)
class GateConfig:
    payee_address: str = ""
    signer_private_key: str = ""
    network: str = "testnet"
    rpc_url: str | None = None
    facilitator_url: str = DEFAULT_FACILITATOR_URL
    asset_address: str | None = None
    asset_symbol: str = DEFAULT_ASSET_SYMBOL
    asset_decimals: int = DEFAULT_ASSET_DECIMALS
    asset_eip712_name: str = DEFAULT_ASSET_EIP712_NAME
    asset_eip712_version: str = DEFAULT_ASSET_EIP712_VERSION
    price_rate: Decimal = Decimal(1)
    default_principal: str | None = None
    audit_log_path: str = "tollgate-audit.jsonl"
    facilitator_timeout_secs: float = 30.0
    validity_window_secs: int = AUTHORIZATION_VALIDITY_SECS
    log_level: str = "INFO"

    # -- derived network parameters -------------------------------------------

    @property
    def network_params(self) -> dict[str, object]:
        return NETWORKS[self.network]

    @property
    def x402_network(self) -> str:
        return str(self.network_params["x402_network"])

    @property
    def chain_id(self) -> int:
        return int(self.network_params["chain_id"])  # type: ignore[call-overload]

    @property
    def resolved_rpc_url(self) -> str:
        return self.rpc_url or str(self.network_params["rpc_url"])

    @property
    def resolved_asset_address(self) -> str:
        return self.asset_address or str(self.network_params["asset_address"])

    @property
    def native_symbol(self) -> str:
        return str(self.network_params["native_symbol"])

    def explorer_link(self, tx_hash: str) -> str:
        return f"{self.network_params['explorer_tx_url']}{tx_hash}"

    # -- validation -------------------------------------------------------------

    def validate(self) -> GateConfig:
        """Raise ConfigError on anything that would break a payment at call time.

        Returns self so callers can chain ``GateConfig.from_env().validate()``.
        """
        if self.network not in NETWORKS:
            raise ConfigError(
                f"Unknown network '{self.network}'. Expected one of: "
                f"{', '.join(sorted(NETWORKS))}."
            )
        if not self.signer_private_key:
            raise ConfigError(
                "Signing credential missing: set PRIVATE_KEY. "
                "Paid tools cannot be settled without it."
            )
        if not self.payee_address:
            raise ConfigError(
                "Payee missing: set PAYMENT_RECIPIENT_ADDRESS to the address "
                "that receives settled payments."
            )
        if not is_address(self.payee_address):
            raise ConfigError(f"Payee address is malformed: {self.payee_address!r}")
        if self.asset_address is not None and not is_address(self.asset_address):
            raise ConfigError(f"Asset address is malformed: {self.asset_address!r}")
        if self.default_principal is not None and not is_address(self.default_principal):
            raise ConfigError(
                f"Default principal is malformed: {self.default_principal!r}"
            )
        if self.price_rate <= 0:
            raise ConfigError(f"price_rate must be positive, got {self.price_rate}")
        if self.facilitator_timeout_secs <= 0:
            raise ConfigError("facilitator_timeout_secs must be positive.")
        if self.validity_window_secs <= 0:
            raise ConfigError("validity_window_secs must be positive.")
        if self.asset_decimals < 0:
            raise ConfigError("asset_decimals must be non-negative.")
        if self.log_level not in _LOG_LEVELS:
            raise ConfigError(f"Unknown log level {self.log_level!r}.")
        return self

    @classmethod
    def from_env(cls) -> GateConfig:
        """Load configuration from environment variables (and ``.env``)."""
        load_dotenv(find_dotenv(usecwd=True))

        raw_rate = os.getenv("X402_PRICE_RATE", "1")
        try:
            price_rate = Decimal(raw_rate)
        except InvalidOperation as e:
            raise ConfigError(f"X402_PRICE_RATE is not a number: {raw_rate!r}") from e

        raw_timeout = os.getenv("X402_TIMEOUT_SECS", "30")
        try:
            timeout = float(raw_timeout)
        except ValueError as e:
            raise ConfigError(f"X402_TIMEOUT_SECS is not a number: {raw_timeout!r}") from e

        return cls(
            payee_address=os.getenv("PAYMENT_RECIPIENT_ADDRESS", ""),
            signer_private_key=os.getenv("PRIVATE_KEY", ""),
            network=os.getenv("NETWORK", "testnet"),
            rpc_url=os.getenv("CRONOS_RPC_URL") or None,
            facilitator_url=os.getenv("X402_FACILITATOR_URL", DEFAULT_FACILITATOR_URL),
            asset_address=os.getenv("X402_ASSET_ADDRESS") or None,
            asset_eip712_name=os.getenv("X402_ASSET_NAME", DEFAULT_ASSET_EIP712_NAME),
            asset_eip712_version=os.getenv("X402_ASSET_VERSION", DEFAULT_ASSET_EIP712_VERSION),
            price_rate=price_rate,
            default_principal=os.getenv("DEFAULT_USER_ADDRESS") or None,
            audit_log_path=os.getenv("TOLLGATE_AUDIT_LOG", "tollgate-audit.jsonl"),
            facilitator_timeout_secs=timeout,
            log_level=os.getenv("TOLLGATE_LOG_LEVEL", "INFO").upper(),
        )
