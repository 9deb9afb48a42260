"""Tollgate: pay-per-call tools over x402.

Stablecoin micropayments on Cronos, settled through an x402 facilitator
before a paid tool runs.
"""

__version__ = "0.1.0"

from tollgate.attempt import AttemptState, FailureReason, PaymentAttempt, PaymentOutcome
from tollgate.audit import AuditPhase, AuditSink, AuditWriteError
from tollgate.audit_backend import AuditBackend
from tollgate.balance import BalanceOracle, BalanceUnavailableError
from tollgate.catalog import CatalogError, ToolCatalog, ToolDescriptor, ToolNotFoundError, default_catalog
from tollgate.config import ConfigError, GateConfig
from tollgate.constants import ToolTier
from tollgate.dispatcher import InvocationDispatcher, ToolRegistry
from tollgate.envelope import InvocationEnvelope
from tollgate.facilitator_client import FacilitatorClient, FacilitatorError
from tollgate.gateway import PaymentGateway
from tollgate.pricing import FixedRateConverter, PriceConverter
from tollgate.reconcile import ReconciliationReport, reconcile_audit_log
from tollgate.rpc_client import ChainRPCClient, ChainRPCError
from tollgate.signer import LocalAccountSigner, PaymentSigner, SignerError
from tollgate.vaults import JsonlFileVault, MemoryVault

__all__ = [
    "AttemptState",
    "FailureReason",
    "PaymentAttempt",
    "PaymentOutcome",
    "AuditPhase",
    "AuditSink",
    "AuditWriteError",
    "AuditBackend",
    "BalanceOracle",
    "BalanceUnavailableError",
    "CatalogError",
    "ToolCatalog",
    "ToolDescriptor",
    "ToolNotFoundError",
    "default_catalog",
    "ConfigError",
    "GateConfig",
    "ToolTier",
    "InvocationDispatcher",
    "ToolRegistry",
    "InvocationEnvelope",
    "FacilitatorClient",
    "FacilitatorError",
    "PaymentGateway",
    "FixedRateConverter",
    "PriceConverter",
    "ReconciliationReport",
    "reconcile_audit_log",
    "ChainRPCClient",
    "ChainRPCError",
    "LocalAccountSigner",
    "PaymentSigner",
    "SignerError",
    "JsonlFileVault",
    "MemoryVault",
]
