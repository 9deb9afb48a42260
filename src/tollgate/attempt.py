"""Payment attempt and outcome records.

Pure data model with no I/O. Amounts are ``Decimal`` in the payment asset's
units; ``required_base_units`` is the exact integer that gets signed and
settled.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from tollgate.pricing import format_amount


class AttemptState(str, Enum):
    """Forward-only states of one payment attempt."""

    QUOTED = "quoted"
    AUTHORIZED = "authorized"
    VERIFIED = "verified"
    SETTLED = "settled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AttemptState.SETTLED, AttemptState.FAILED)


_ORDER = [AttemptState.QUOTED, AttemptState.AUTHORIZED, AttemptState.VERIFIED, AttemptState.SETTLED]


class FailureReason(str, Enum):
    """Error taxonomy surfaced to callers verbatim (by value)."""

    TOOL_NOT_FOUND = "ToolNotFound"
    VALIDATION_ERROR = "ValidationError"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    VERIFICATION_FAILED = "VerificationFailed"
    SETTLEMENT_FAILED = "SettlementFailed"
    TIMEOUT = "Timeout"
    HANDLER_ERROR = "HandlerError"
    AUDIT_UNAVAILABLE = "AuditUnavailable"


class InvalidTransitionError(RuntimeError):
    """An attempt was asked to move backwards, sideways, or out of a terminal state."""


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_attempt_id(tool_id: str) -> str:
    """``{tool_id}-{unix_ms}-{8 hex}``; the suffix keeps same-millisecond attempts distinct."""
    return f"{tool_id}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


# ---------------------------------------------------------------------------
# PaymentAttempt
# ---------------------------------------------------------------------------


@dataclass
class PaymentAttempt:
    """One run of the payment state machine for one invocation.

    Owned by the gateway. ``advance()`` / ``fail()`` are the only mutators
    and both refuse once the attempt is terminal.
    """

    id: str
    tool_id: str
    principal: str
    payee: str
    required_amount: Decimal
    required_base_units: int
    asset: str
    network: str
    state: AttemptState = AttemptState.QUOTED
    created_at: str = field(default_factory=utc_now)

    def advance(self, new_state: AttemptState) -> None:
        """Move exactly one step forward along the success path."""
        if self.state.is_terminal:
            raise InvalidTransitionError(f"Attempt {self.id} is already {self.state.value}")
        if new_state is AttemptState.FAILED:
            raise InvalidTransitionError("Use fail() to terminate an attempt")
        if _ORDER.index(new_state) != _ORDER.index(self.state) + 1:
            raise InvalidTransitionError(
                f"Attempt {self.id}: {self.state.value} -> {new_state.value} is not allowed"
            )
        self.state = new_state

    def fail(self) -> None:
        if self.state.is_terminal:
            raise InvalidTransitionError(f"Attempt {self.id} is already {self.state.value}")
        self.state = AttemptState.FAILED

    def audit_fields(self) -> dict[str, Any]:
        """Fields every audit entry for this attempt carries."""
        return {
            "attempt_id": self.id,
            "tool_id": self.tool_id,
            "principal": self.principal,
            "payee": self.payee,
            "required_amount": format_amount(self.required_amount),
            "required_base_units": self.required_base_units,
            "asset": self.asset,
            "network": self.network,
        }


# ---------------------------------------------------------------------------
# PaymentOutcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentOutcome:
    """Terminal result of an attempt; doubles as the caller's receipt."""

    attempt_id: str
    success: bool
    transaction_reference: str | None = None
    explorer_link: str | None = None
    balance_before: Decimal | None = None
    balance_after: Decimal | None = None
    amount_spent: Decimal | None = None
    failure_reason: FailureReason | None = None
    failure_detail: str | None = None
    have: Decimal | None = None
    need: Decimal | None = None
    balance_unavailable: bool = False
    reference_verified: bool = False
    settled_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Receipt form. Unset optional fields are omitted."""
        data: dict[str, Any] = {
            "attemptId": self.attempt_id,
            "success": self.success,
            "settledAt": self.settled_at,
        }
        if self.success:
            data["referenceVerified"] = self.reference_verified
        optional: dict[str, Any] = {
            "transactionReference": self.transaction_reference,
            "explorerLink": self.explorer_link,
            "balanceBefore": self.balance_before,
            "balanceAfter": self.balance_after,
            "amountSpent": self.amount_spent,
            "failureReason": self.failure_reason.value if self.failure_reason else None,
            "failureDetail": self.failure_detail,
            "have": self.have,
            "need": self.need,
        }
        for key, value in optional.items():
            if value is None:
                continue
            data[key] = format_amount(value) if isinstance(value, Decimal) else value
        if self.balance_unavailable:
            data["balanceUnavailable"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaymentOutcome:
        def _dec(key: str) -> Decimal | None:
            raw = data.get(key)
            return None if raw is None else Decimal(str(raw))

        raw_reason = data.get("failureReason")
        return cls(
            attempt_id=str(data.get("attemptId", "")),
            success=bool(data.get("success", False)),
            transaction_reference=data.get("transactionReference"),
            explorer_link=data.get("explorerLink"),
            balance_before=_dec("balanceBefore"),
            balance_after=_dec("balanceAfter"),
            amount_spent=_dec("amountSpent"),
            failure_reason=FailureReason(raw_reason) if raw_reason else None,
            failure_detail=data.get("failureDetail"),
            have=_dec("have"),
            need=_dec("need"),
            balance_unavailable=bool(data.get("balanceUnavailable", False)),
            reference_verified=bool(data.get("referenceVerified", False)),
            settled_at=str(data.get("settledAt", "")),
        )
