"""Tests for the invocation envelope and remediation suggestions."""

from decimal import Decimal

from tollgate.attempt import FailureReason, PaymentOutcome
from tollgate.constants import ToolTier
from tollgate.envelope import FAUCET_URL, InvocationEnvelope, suggestion_for


class TestSuggestions:
    def test_every_reason_has_one(self) -> None:
        for reason in FailureReason:
            assert suggestion_for(reason)

    def test_insufficient_funds_points_at_faucet(self) -> None:
        assert FAUCET_URL in suggestion_for(FailureReason.INSUFFICIENT_FUNDS, ToolTier.PREMIUM)

    def test_ultra_shading(self) -> None:
        premium = suggestion_for(FailureReason.INSUFFICIENT_FUNDS, ToolTier.PREMIUM)
        ultra = suggestion_for(FailureReason.INSUFFICIENT_FUNDS, ToolTier.ULTRA)
        assert ultra.startswith(premium)
        assert ultra != premium

    def test_paid_handler_error_mentions_charge(self) -> None:
        free = suggestion_for(FailureReason.HANDLER_ERROR, ToolTier.FREE)
        paid = suggestion_for(FailureReason.HANDLER_ERROR, ToolTier.ULTRA)
        assert "charged" not in free
        assert "charged" in paid


class TestEnvelope:
    def test_ok_free_has_no_receipt(self) -> None:
        data = InvocationEnvelope.ok("get_gas_price", ToolTier.FREE, {"gwei": "5000"}).to_dict()
        assert data == {
            "success": True, "tool": "get_gas_price", "tier": "free", "data": {"gwei": "5000"},
        }

    def test_from_outcome(self) -> None:
        outcome = PaymentOutcome(
            attempt_id="a-1", success=False,
            failure_reason=FailureReason.INSUFFICIENT_FUNDS,
            failure_detail="have 0.2, need 0.5",
            have=Decimal("0.20"), need=Decimal("0.5"),
        )
        data = InvocationEnvelope.from_outcome("analyze_wallet_portfolio", ToolTier.PREMIUM, outcome).to_dict()
        assert data["success"] is False
        assert data["error"] == "InsufficientFunds"
        assert data["have"] == "0.2"
        assert data["need"] == "0.5"
        assert data["charged"] is False
        assert data["paymentReceipt"]["attemptId"] == "a-1"
        assert data["message"] == "have 0.2, need 0.5"

    def test_unknown_tool_has_no_tier(self) -> None:
        data = InvocationEnvelope.failure("teleport", FailureReason.TOOL_NOT_FOUND, "Unknown tool").to_dict()
        assert "tier" not in data
        assert "charged" not in data
        assert data["suggestion"] == suggestion_for(FailureReason.TOOL_NOT_FOUND)
