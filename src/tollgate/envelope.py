"""The uniform response wrapper returned for every invocation, paid or free."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from tollgate.attempt import FailureReason, PaymentOutcome
from tollgate.constants import ToolTier
from tollgate.pricing import format_amount

FAUCET_URL = "https://faucet.cronos.org"

_SUGGESTIONS: dict[FailureReason, str] = {
    FailureReason.TOOL_NOT_FOUND: "Check the tool name and try again. Use list_tools to see what is available.",
    FailureReason.VALIDATION_ERROR: "Fix the arguments to match the tool's input schema. You were not charged.",
    FailureReason.INSUFFICIENT_FUNDS: (
        f"Add funds to the paying wallet. On testnet, get USDC.e from {FAUCET_URL} "
        "then retry the tool."
    ),
    FailureReason.VERIFICATION_FAILED: (
        "The payment authorization was rejected. Check that the signing key controls "
        "the paying address and that the asset settings match the network. You were not charged."
    ),
    FailureReason.SETTLEMENT_FAILED: (
        "Settlement did not go through and no funds moved. Re-invoke the tool to try again."
    ),
    FailureReason.TIMEOUT: (
        "The payment facilitator did not answer in time. Run check_x402_status, "
        "then re-invoke the tool."
    ),
    FailureReason.HANDLER_ERROR: "The tool failed while running. Please check the arguments and try again.",
    FailureReason.AUDIT_UNAVAILABLE: (
        "Payments are paused because the audit log cannot be written. No payment was attempted; "
        "contact the operator."
    ),
}

_PAID_HANDLER_SUGGESTION = (
    "You were charged but the tool failed. Keep the paymentReceipt; the charge is in the "
    "audit log for reconciliation. Re-invoking will charge again."
)


def suggestion_for(reason: FailureReason, tier: ToolTier | None = None) -> str:
    """Remediation hint for a failure, shaded by tier where it matters."""
    if reason is FailureReason.HANDLER_ERROR and tier is not None and tier.is_paid:
        return _PAID_HANDLER_SUGGESTION
    if reason is FailureReason.INSUFFICIENT_FUNDS and tier is ToolTier.ULTRA:
        return _SUGGESTIONS[reason] + " Ultra tools cost several USDC.e per call."
    return _SUGGESTIONS[reason]


@dataclass(frozen=True)
class InvocationEnvelope:
    """Response for one request.

    ``to_dict()`` omits every optional field that is unset, so a free
    call carries no ``paymentReceipt`` key at all.
    """

    success: bool
    tool: str
    tier: ToolTier | None = None
    payment_receipt: PaymentOutcome | None = None
    data: Any = None
    error: FailureReason | None = None
    message: str | None = None
    suggestion: str | None = None
    have: Decimal | None = None
    need: Decimal | None = None
    detail: str | None = None
    charged: bool | None = None

    @classmethod
    def ok(
        cls,
        tool: str,
        tier: ToolTier,
        data: Any,
        receipt: PaymentOutcome | None = None,
    ) -> InvocationEnvelope:
        return cls(success=True, tool=tool, tier=tier, data=data, payment_receipt=receipt)

    @classmethod
    def failure(
        cls,
        tool: str,
        reason: FailureReason,
        message: str,
        tier: ToolTier | None = None,
        **fields: Any,
    ) -> InvocationEnvelope:
        return cls(
            success=False,
            tool=tool,
            tier=tier,
            error=reason,
            message=message,
            suggestion=suggestion_for(reason, tier),
            **fields,
        )

    @classmethod
    def from_outcome(cls, tool: str, tier: ToolTier, outcome: PaymentOutcome) -> InvocationEnvelope:
        """Error envelope for a payment that ended FAILED."""
        reason = outcome.failure_reason or FailureReason.SETTLEMENT_FAILED
        return cls.failure(
            tool,
            reason,
            message=outcome.failure_detail or reason.value,
            tier=tier,
            payment_receipt=outcome,
            have=outcome.have,
            need=outcome.need,
            detail=outcome.failure_detail,
            charged=False,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "tool": self.tool}
        optional: dict[str, Any] = {
            "tier": self.tier.value if self.tier else None,
            "paymentReceipt": self.payment_receipt.to_dict() if self.payment_receipt else None,
            "data": self.data,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "suggestion": self.suggestion,
            "have": format_amount(self.have) if self.have is not None else None,
            "need": format_amount(self.need) if self.need is not None else None,
            "detail": self.detail,
            "charged": self.charged,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data
