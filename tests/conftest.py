"""Shared fakes and fixtures: an in-memory chain and facilitator."""

from __future__ import annotations

import asyncio
import base64
import json
from decimal import Decimal
from typing import Any

import pytest

from tollgate.audit import AuditSink
from tollgate.balance import BalanceUnavailableError
from tollgate.catalog import default_catalog
from tollgate.config import GateConfig
from tollgate.dispatcher import InvocationDispatcher, ToolRegistry
from tollgate.facilitator_client import FacilitatorValidationError
from tollgate.gateway import PaymentGateway
from tollgate.pricing import from_base_units
from tollgate.signer import LocalAccountSigner
from tollgate.vaults import MemoryVault

# Well-known development key (Hardhat/Anvil account #0); never funded on a real chain.
PAYER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
PAYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
PAYEE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
OTHER = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
TX_HASH = "0x" + "ab" * 32


def decode_header(header: str) -> dict[str, Any]:
    return json.loads(base64.b64decode(header))


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeOracle:
    """BalanceOracle stand-in over a mutable balance table."""

    def __init__(self, balances: dict[str, Decimal] | None = None, gas: Decimal = Decimal("2")) -> None:
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.gas = gas
        self.reads = 0
        self.fail = False
        self.used_nonces: set[str] = set()
        self.nonce_state_unknown = False
        # When set to n > 1, reads block until n of them are in flight
        self.rendezvous = 0
        self._arrived = 0
        self._all_arrived = asyncio.Event()

    async def spendable_balance(self, principal: str) -> Decimal:
        self.reads += 1
        if self.fail:
            raise BalanceUnavailableError("rpc unreachable")
        if self.rendezvous > 1:
            self._arrived += 1
            if self._arrived >= self.rendezvous:
                self.rendezvous = 0
                self._all_arrived.set()
            else:
                await asyncio.wait_for(self._all_arrived.wait(), timeout=2)
        return self.balances.get(principal.lower(), Decimal(0))

    async def gas_balance(self, principal: str) -> Decimal:
        if self.fail:
            raise BalanceUnavailableError("rpc unreachable")
        return self.gas

    async def authorization_used(self, principal: str, nonce: str) -> bool | None:
        if self.nonce_state_unknown:
            return None
        return nonce in self.used_nonces


class FakeFacilitator:
    """Facilitator stand-in that debits the FakeOracle on settle.

    ``settle`` debits first (consuming the authorization nonce), then waits
    ``settle_delay``, then answers, so a timeout can land after funds moved.
    """

    def __init__(self, oracle: FakeOracle) -> None:
        self.oracle = oracle
        self.verify_result: dict[str, Any] = {"isValid": True, "invalidReason": None}
        self.verify_error: Exception | None = None
        self.verify_delay = 0.0
        self.settle_result: dict[str, Any] | None = None
        self.settle_error: Exception | None = None
        self.settle_delay = 0.0
        self.debit = True
        # HTTP 200 body returned instead of a 400 when the payer is short
        self.shortfall_result: dict[str, Any] | None = None
        self.verify_calls: list[tuple[str, dict[str, Any]]] = []
        self.settle_calls: list[tuple[str, dict[str, Any]]] = []
        self.settle_finished = asyncio.Event()

    async def get_supported(self) -> dict[str, Any]:
        return {"kinds": [{"x402Version": 1, "scheme": "exact", "network": "cronos-testnet"}]}

    async def verify(self, header: str, requirements: dict[str, Any]) -> dict[str, Any]:
        self.verify_calls.append((header, requirements))
        if self.verify_delay:
            await asyncio.sleep(self.verify_delay)
        if self.verify_error is not None:
            raise self.verify_error
        return self.verify_result

    async def settle(self, header: str, requirements: dict[str, Any]) -> dict[str, Any]:
        self.settle_calls.append((header, requirements))
        try:
            if self.settle_error is not None:
                raise self.settle_error
            payload = decode_header(header)["payload"]
            amount = from_base_units(int(payload["value"]), 6)
            payer = payload["from"].lower()
            if self.debit:
                balance = self.oracle.balances.get(payer, Decimal(0))
                if balance < amount:
                    if self.shortfall_result is not None:
                        return self.shortfall_result
                    raise FacilitatorValidationError(
                        '{"error":"transfer amount exceeds balance"}', status_code=400,
                    )
                self.oracle.balances[payer] = balance - amount
                self.oracle.used_nonces.add(payload["nonce"])
            if self.settle_delay:
                await asyncio.sleep(self.settle_delay)
            if self.settle_result is not None:
                return self.settle_result
            return {"event": "payment.settled", "txHash": TX_HASH}
        finally:
            self.settle_finished.set()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_config(**overrides: Any) -> GateConfig:
    fields: dict[str, Any] = {
        "payee_address": PAYEE,
        "signer_private_key": PAYER_KEY,
        "network": "testnet",
        "facilitator_timeout_secs": 1.0,
    }
    fields.update(overrides)
    return GateConfig(**fields)


@pytest.fixture
def config() -> GateConfig:
    return make_config()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle({PAYER: Decimal("10")})


@pytest.fixture
def facilitator(oracle: FakeOracle) -> FakeFacilitator:
    return FakeFacilitator(oracle)


@pytest.fixture
def vault() -> MemoryVault:
    return MemoryVault()


@pytest.fixture
def sink(vault: MemoryVault) -> AuditSink:
    return AuditSink(vault)


@pytest.fixture
def signer(config: GateConfig) -> LocalAccountSigner:
    return LocalAccountSigner(
        config.signer_private_key,
        chain_id=config.chain_id,
        asset_address=config.resolved_asset_address,
        asset_name=config.asset_eip712_name,
        asset_version=config.asset_eip712_version,
    )


@pytest.fixture
def gateway(config, oracle, facilitator, signer, sink) -> PaymentGateway:
    return PaymentGateway(config, default_catalog(), oracle, facilitator, signer, sink)


class RecordingHandlers:
    """Handlers for every default tool that record when and how they ran."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any], str]] = []
        self.failing: set[str] = set()

    def registry(self) -> ToolRegistry:
        registry = ToolRegistry()
        for tool in default_catalog():
            registry.register(tool.id, tool.tier, self._handler(tool.id))
        return registry

    def _handler(self, tool_id: str):
        async def handler(args: dict[str, Any], principal: str) -> dict[str, Any]:
            self.calls.append((tool_id, args, principal))
            if tool_id in self.failing:
                raise RuntimeError(f"{tool_id} exploded")
            return {"handled": tool_id}

        return handler


@pytest.fixture
def handlers() -> RecordingHandlers:
    return RecordingHandlers()


@pytest.fixture
def dispatcher(gateway, sink, handlers) -> InvocationDispatcher:
    return InvocationDispatcher(
        default_catalog(), handlers.registry(), gateway, sink, default_principal=PAYER,
    )


@pytest.fixture
def addresses() -> dict[str, str]:
    return {"payer": PAYER, "payee": PAYEE, "other": OTHER, "tx_hash": TX_HASH}

