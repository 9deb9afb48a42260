"""PaymentGateway: drives one x402 payment from quote to a terminal outcome.

States move strictly forward::

    QUOTED -> AUTHORIZED -> VERIFIED -> SETTLED
        \\___________\\___________\\______-> FAILED(reason)

Each phase is appended to the audit sink before the next network call is
issued, so a crash mid-attempt leaves a partial record ending at the last
completed phase. Nothing is retried; a new invocation means a new attempt.
"""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any

from tollgate.attempt import (
    AttemptState,
    FailureReason,
    PaymentAttempt,
    PaymentOutcome,
    new_attempt_id,
)
from tollgate.audit import AuditPhase, AuditSink, AuditWriteError
from tollgate.balance import BalanceOracle, BalanceUnavailableError
from tollgate.catalog import ToolCatalog, ToolDescriptor
from tollgate.config import GateConfig
from tollgate.constants import UNVERIFIED_REFERENCE_MARKER
from tollgate.facilitator_client import (
    FacilitatorAuthError,
    FacilitatorClient,
    FacilitatorError,
    FacilitatorTimeoutError,
    FacilitatorValidationError,
)
from tollgate.pricing import FixedRateConverter, PriceConverter, format_amount
from tollgate.signer import (
    PaymentAuthorization,
    PaymentSigner,
    SignerError,
    build_authorization,
    build_requirements,
)

logger = logging.getLogger(__name__)

# 4xx from /settle means the facilitator refused before broadcasting
_DEFINITE_SETTLE_REJECTIONS = (FacilitatorValidationError, FacilitatorAuthError)


def _reports_failure(response: dict[str, Any]) -> bool:
    """A 2xx settle body that says outright the payment did not happen."""
    return (
        response.get("event") == "payment.failed"
        or response.get("success") is False
        or bool(response.get("error") or response.get("errorReason"))
    )


class _Abort(Exception):
    """Internal: an audit write failed before funds could move."""


class PaymentGateway:
    """The payment state machine for paid tools.

    Collaborators are injected; the gateway holds no per-principal state
    and takes no locks, so overlapping invocations for the same principal
    produce independent attempts (and, if both settle, two charges).
    """

    def __init__(
        self,
        config: GateConfig,
        catalog: ToolCatalog,
        oracle: BalanceOracle,
        facilitator: FacilitatorClient,
        signer: PaymentSigner,
        sink: AuditSink,
        converter: PriceConverter | None = None,
    ) -> None:
        self._config = config
        self._catalog = catalog
        self._oracle = oracle
        self._facilitator = facilitator
        self._signer = signer
        self._sink = sink
        self._converter = converter or FixedRateConverter(
            rate=config.price_rate, decimals=config.asset_decimals,
        )
        self._inflight: set[asyncio.Task[PaymentOutcome]] = set()

    @property
    def converter(self) -> PriceConverter:
        return self._converter

    # -- quote ----------------------------------------------------------------

    def quote(self, tool: ToolDescriptor, principal: str) -> PaymentAttempt:
        """Create a QUOTED attempt for a paid tool."""
        if not tool.is_paid:
            raise ValueError(f"Tool '{tool.id}' is free; free tools bypass the gateway")
        return PaymentAttempt(
            id=new_attempt_id(tool.id),
            tool_id=tool.id,
            principal=principal,
            payee=self._config.payee_address,
            required_amount=self._converter.convert(tool.price),
            required_base_units=self._converter.base_units(tool.price),
            asset=self._config.resolved_asset_address,
            network=self._config.x402_network,
        )

    # -- entry point ----------------------------------------------------------

    async def run(self, tool_id: str, principal: str) -> PaymentOutcome:
        """Run one attempt to a terminal outcome. Never raises for payment failures.

        Raises ToolNotFoundError for unknown ids and ValueError for free tools;
        the dispatcher filters both before calling.
        """
        tool = self._catalog.lookup(tool_id)
        attempt = self.quote(tool, principal)
        logger.info(
            "[%s] quoted %s %s for %s (payer %s)",
            attempt.id, format_amount(attempt.required_amount),
            self._config.asset_symbol, tool.id, principal,
        )

        try:
            await self._audit(
                attempt, AuditPhase.ATTEMPT_STARTED, "quoted",
                tier=tool.tier.value, catalog_price=format_amount(tool.price),
            )
            balance_or_outcome = await self._authorize(attempt)
        except _Abort as e:
            return await self._complete(attempt, self._audit_unavailable(attempt, e))

        if isinstance(balance_or_outcome, PaymentOutcome):
            return await self._complete(attempt, balance_or_outcome)

        # Past AUTHORIZED there is no cancellation path: a caller that goes
        # away still gets verification and settlement run to completion.
        task = asyncio.ensure_future(self._verify_and_settle(attempt, balance_or_outcome))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def _verify_and_settle(self, attempt: PaymentAttempt, authorized_balance: Decimal) -> PaymentOutcome:
        try:
            prepared = await self._verify(attempt)
            if isinstance(prepared, PaymentOutcome):
                return await self._complete(attempt, prepared)
            outcome = await self._settle(attempt, authorized_balance, *prepared)
        except _Abort as e:
            return await self._complete(attempt, self._audit_unavailable(attempt, e))
        return await self._complete(attempt, outcome)

    # -- phases ---------------------------------------------------------------

    async def _authorize(self, attempt: PaymentAttempt) -> Decimal | PaymentOutcome:
        """QUOTED -> AUTHORIZED, or FAILED(InsufficientFunds)."""
        need = attempt.required_amount
        try:
            balance = await self._oracle.spendable_balance(attempt.principal)
        except BalanceUnavailableError as e:
            await self._audit(
                attempt, AuditPhase.BALANCE_CHECKED, "unavailable", detail=str(e),
            )
            return self._failed(
                attempt, FailureReason.INSUFFICIENT_FUNDS,
                detail=f"Balance unavailable: {e}",
                have=Decimal(0), need=need, balance_unavailable=True,
            )

        if balance < need:
            await self._audit(
                attempt, AuditPhase.BALANCE_CHECKED, "insufficient",
                balance=format_amount(balance),
            )
            return self._failed(
                attempt, FailureReason.INSUFFICIENT_FUNDS,
                detail=(
                    f"Insufficient {self._config.asset_symbol} balance. "
                    f"Have: {format_amount(balance)}, Need: {format_amount(need)}"
                ),
                have=balance, need=need, balance_before=balance,
            )

        await self._audit(
            attempt, AuditPhase.BALANCE_CHECKED, "sufficient", balance=format_amount(balance),
        )
        attempt.advance(AttemptState.AUTHORIZED)
        logger.info("[%s] authorized: balance %s >= %s", attempt.id, balance, need)
        return balance

    async def _verify(
        self, attempt: PaymentAttempt,
    ) -> tuple[PaymentAuthorization, str, dict[str, Any]] | PaymentOutcome:
        """AUTHORIZED -> VERIFIED, or FAILED(VerificationFailed | Timeout)."""
        cfg = self._config
        try:
            authorization = build_authorization(
                self._signer,
                principal=attempt.principal,
                payee=attempt.payee,
                value=attempt.required_base_units,
                asset=attempt.asset,
                validity_secs=cfg.validity_window_secs,
            )
        except SignerError as e:
            await self._audit(attempt, AuditPhase.AUTHORIZATION_BUILT, "failed", detail=str(e))
            return self._failed(attempt, FailureReason.VERIFICATION_FAILED, detail=str(e))

        header = authorization.to_header(attempt.network)
        requirements = build_requirements(
            payee=attempt.payee,
            value=attempt.required_base_units,
            asset=attempt.asset,
            network=attempt.network,
            description=f"Payment for {attempt.tool_id} (Tool: {attempt.tool_id})",
            max_timeout_secs=int(cfg.facilitator_timeout_secs),
        )
        await self._audit(
            attempt, AuditPhase.AUTHORIZATION_BUILT, "signed",
            valid_before=authorization.valid_before, nonce=authorization.nonce,
        )

        try:
            response = await asyncio.wait_for(
                self._facilitator.verify(header, requirements),
                timeout=cfg.facilitator_timeout_secs,
            )
        except (asyncio.TimeoutError, FacilitatorTimeoutError) as e:
            detail = str(e) or f"verify exceeded {cfg.facilitator_timeout_secs}s"
            await self._audit(attempt, AuditPhase.VERIFICATION_RESULT, "timeout", detail=detail)
            return self._failed(attempt, FailureReason.TIMEOUT, detail=f"Verification timed out: {detail}")
        except FacilitatorError as e:
            await self._audit(attempt, AuditPhase.VERIFICATION_RESULT, "error", detail=str(e))
            return self._failed(attempt, FailureReason.VERIFICATION_FAILED, detail=str(e))

        if not response.get("isValid"):
            # The verifier's reason is recorded verbatim
            detail = response.get("invalidReason") or json.dumps(response, sort_keys=True)
            await self._audit(attempt, AuditPhase.VERIFICATION_RESULT, "invalid", detail=detail)
            return self._failed(attempt, FailureReason.VERIFICATION_FAILED, detail=str(detail))

        await self._audit(attempt, AuditPhase.VERIFICATION_RESULT, "valid")
        attempt.advance(AttemptState.VERIFIED)
        logger.info("[%s] verified by facilitator", attempt.id)
        return authorization, header, requirements

    async def _settle(
        self,
        attempt: PaymentAttempt,
        authorized_balance: Decimal,
        authorization: PaymentAuthorization,
        header: str,
        requirements: dict[str, Any],
    ) -> PaymentOutcome:
        """VERIFIED -> SETTLED, or FAILED(SettlementFailed | Timeout | InsufficientFunds)."""
        cfg = self._config
        need = attempt.required_amount

        # Baseline for the balance-delta check
        try:
            balance_before = await self._oracle.spendable_balance(attempt.principal)
        except BalanceUnavailableError:
            balance_before = authorized_balance
        if balance_before < need:
            await self._audit(
                attempt, AuditPhase.SETTLEMENT_RESULT, "not_dispatched",
                balance_before=format_amount(balance_before),
                detail="balance fell below the required amount before settlement",
            )
            return self._failed(
                attempt, FailureReason.INSUFFICIENT_FUNDS,
                detail=(
                    f"Insufficient {cfg.asset_symbol} balance at settlement. "
                    f"Have: {format_amount(balance_before)}, Need: {format_amount(need)}"
                ),
                have=balance_before, need=need, balance_before=balance_before,
            )

        response: dict[str, Any] | None = None
        timed_out = False
        rejected = False
        detail = ""
        logger.info("[%s] settling %s base units on %s", attempt.id, attempt.required_base_units, attempt.network)
        try:
            response = await asyncio.wait_for(
                self._facilitator.settle(header, requirements),
                timeout=cfg.facilitator_timeout_secs,
            )
        except (asyncio.TimeoutError, FacilitatorTimeoutError) as e:
            timed_out = True
            detail = str(e) or f"settle exceeded {cfg.facilitator_timeout_secs}s"
        except _DEFINITE_SETTLE_REJECTIONS as e:
            rejected = True
            detail = str(e)
        except FacilitatorError as e:
            detail = str(e)

        tx_hash = response.get("txHash") if response else None
        if response is not None and not tx_hash:
            detail = str(
                response.get("error")
                or response.get("errorReason")
                or json.dumps(response, sort_keys=True)
            )
            rejected = _reports_failure(response)

        balance_after = await self._read_balance_after(attempt)

        # A balance drop alone may be another attempt's charge; only this
        # attempt's consumed nonce ties the movement to it.
        authorization_used: bool | None = None
        funds_moved = (
            not tx_hash
            and not rejected
            and balance_after is not None
            and balance_after <= balance_before - need
        )
        if funds_moved:
            authorization_used = await self._oracle.authorization_used(
                attempt.principal, authorization.nonce,
            )
            if not authorization_used:
                detail = (
                    f"balance moved {format_amount(balance_before)} -> {format_amount(balance_after)} "
                    f"but authorization {authorization.nonce} "
                    + ("is unused" if authorization_used is False else "could not be confirmed")
                    + (f"; {detail}" if detail else "")
                )
                logger.warning("[%s] %s", attempt.id, detail)

        if tx_hash:
            outcome = PaymentOutcome(
                attempt_id=attempt.id,
                success=True,
                transaction_reference=tx_hash,
                explorer_link=cfg.explorer_link(tx_hash),
                balance_before=balance_before,
                balance_after=balance_after,
                amount_spent=need,
                reference_verified=True,
            )
            result = "settled"
        elif funds_moved and authorization_used:
            logger.warning(
                "[%s] settlement returned no tx hash but authorization %s was used "
                "(balance %s -> %s); recording as settled with unverified reference",
                attempt.id, authorization.nonce, balance_before, balance_after,
            )
            outcome = PaymentOutcome(
                attempt_id=attempt.id,
                success=True,
                transaction_reference=UNVERIFIED_REFERENCE_MARKER,
                balance_before=balance_before,
                balance_after=balance_after,
                amount_spent=need,
                failure_detail=detail or None,
                reference_verified=False,
            )
            result = "settled_unverified"
        else:
            reason = FailureReason.TIMEOUT if timed_out else FailureReason.SETTLEMENT_FAILED
            outcome = self._failed(
                attempt, reason,
                detail=f"Settlement timed out: {detail}" if timed_out else (detail or "no transaction hash returned"),
                balance_before=balance_before, balance_after=balance_after,
            )
            result = "timeout" if timed_out else "failed"

        try:
            await self._audit(
                attempt, AuditPhase.SETTLEMENT_RESULT, result,
                transaction_reference=outcome.transaction_reference,
                reference_verified=outcome.reference_verified,
                authorization_used=authorization_used,
                balance_before=format_amount(balance_before),
                balance_after=format_amount(balance_after) if balance_after is not None else None,
                detail=detail or None,
            )
        except _Abort:
            # Funds may already have moved; the outcome stands.
            logger.error(
                "CRITICAL: [%s] settlement result %s could not be audited (tx %s).",
                attempt.id, result, outcome.transaction_reference,
            )

        if outcome.success:
            attempt.advance(AttemptState.SETTLED)
        return outcome

    async def _read_balance_after(self, attempt: PaymentAttempt) -> Decimal | None:
        try:
            return await self._oracle.spendable_balance(attempt.principal)
        except BalanceUnavailableError:
            logger.warning("[%s] post-settlement balance unavailable", attempt.id)
            return None

    # -- helpers --------------------------------------------------------------

    async def _audit(self, attempt: PaymentAttempt, phase: AuditPhase, result: str, **extra: Any) -> None:
        fields = attempt.audit_fields()
        fields.update({k: v for k, v in extra.items() if v is not None})
        try:
            await self._sink.record(phase, result, **fields)
        except AuditWriteError as e:
            raise _Abort(str(e)) from e

    def _failed(
        self,
        attempt: PaymentAttempt,
        reason: FailureReason,
        detail: str,
        **fields: Any,
    ) -> PaymentOutcome:
        logger.warning("[%s] payment failed: %s: %s", attempt.id, reason.value, detail)
        return PaymentOutcome(
            attempt_id=attempt.id,
            success=False,
            failure_reason=reason,
            failure_detail=detail,
            **fields,
        )

    def _audit_unavailable(self, attempt: PaymentAttempt, error: Exception) -> PaymentOutcome:
        return self._failed(
            attempt, FailureReason.AUDIT_UNAVAILABLE,
            detail=f"Audit log unavailable, payment not attempted: {error}",
        )

    async def _complete(self, attempt: PaymentAttempt, outcome: PaymentOutcome) -> PaymentOutcome:
        """Mark the attempt terminal and write its closing entry."""
        if not outcome.success and not attempt.state.is_terminal:
            attempt.fail()
        try:
            await self._audit(
                attempt, AuditPhase.ATTEMPT_COMPLETED,
                "success" if outcome.success else "failed",
                success=outcome.success,
                failure_reason=outcome.failure_reason.value if outcome.failure_reason else None,
                failure_detail=outcome.failure_detail,
                transaction_reference=outcome.transaction_reference,
                reference_verified=outcome.reference_verified if outcome.success else None,
                settled_at=outcome.settled_at,
            )
        except _Abort:
            logger.error(
                "CRITICAL: [%s] completion (%s) could not be audited.",
                attempt.id, "success" if outcome.success else outcome.failure_reason,
            )
        return outcome

    async def drain(self) -> None:
        """Wait for attempts whose callers went away (used during shutdown)."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
