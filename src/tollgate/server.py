"""Process entry point: wire the components from GateConfig and serve MCP over stdio."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass

from tollgate.audit import AuditSink
from tollgate.balance import BalanceOracle
from tollgate.catalog import CatalogError, ToolCatalog, default_catalog
from tollgate.channel import serve
from tollgate.config import ConfigError, GateConfig
from tollgate.dispatcher import InvocationDispatcher
from tollgate.facilitator_client import FacilitatorClient
from tollgate.gateway import PaymentGateway
from tollgate.rpc_client import ChainRPCClient
from tollgate.signer import LocalAccountSigner, SignerError
from tollgate.tools import MarketDataClient, build_registry
from tollgate.vaults import JsonlFileVault

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class TollgateApp:
    config: GateConfig
    dispatcher: InvocationDispatcher
    gateway: PaymentGateway
    sink: AuditSink
    rpc: ChainRPCClient
    facilitator: FacilitatorClient
    market: MarketDataClient

    async def aclose(self) -> None:
        await self.gateway.drain()
        await self.rpc.close()
        await self.facilitator.close()
        await self.market.close()


def create_app(config: GateConfig, catalog: ToolCatalog | None = None) -> TollgateApp:
    """Build every component. Raises ConfigError/CatalogError/SignerError on bad setup."""
    catalog = catalog or default_catalog()
    signer = LocalAccountSigner(
        config.signer_private_key,
        chain_id=config.chain_id,
        asset_address=config.resolved_asset_address,
        asset_name=config.asset_eip712_name,
        asset_version=config.asset_eip712_version,
    )
    rpc = ChainRPCClient(config.resolved_rpc_url)
    facilitator = FacilitatorClient(config.facilitator_url, timeout=config.facilitator_timeout_secs)
    market = MarketDataClient()
    oracle = BalanceOracle(rpc, config.resolved_asset_address, config.asset_decimals)
    sink = AuditSink(JsonlFileVault(config.audit_log_path))
    gateway = PaymentGateway(config, catalog, oracle, facilitator, signer, sink)
    registry = build_registry(config, rpc, oracle, facilitator, market)
    dispatcher = InvocationDispatcher(
        catalog, registry, gateway, sink,
        default_principal=config.default_principal or signer.address,
    )
    return TollgateApp(
        config=config,
        dispatcher=dispatcher,
        gateway=gateway,
        sink=sink,
        rpc=rpc,
        facilitator=facilitator,
        market=market,
    )


async def _run(app: TollgateApp) -> None:
    try:
        await serve(app.dispatcher)
    finally:
        await app.aclose()


def main() -> None:
    # stdout carries MCP messages; logs go to stderr
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format=_LOG_FORMAT)
    try:
        config = GateConfig.from_env().validate()
        logging.getLogger().setLevel(config.log_level)
        app = create_app(config)
    except (ConfigError, CatalogError, SignerError) as e:
        logger.critical("Startup failed: %s", e)
        sys.exit(2)

    logger.info(
        "tollgate serving %d tools on %s (chain %d); payee %s; audit log %s",
        len(app.dispatcher.catalog), config.x402_network, config.chain_id,
        config.payee_address, config.audit_log_path,
    )
    asyncio.run(_run(app))
