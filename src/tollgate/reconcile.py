"""Read-only reconciliation over the audit log.

Finds what an operator has to look at by hand: attempts that never
completed, settlements without a verified transaction reference, and
paid calls whose handler failed after the charge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from tollgate.audit import AuditPhase, AuditSink

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    attempts: int = 0
    settled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    incomplete: list[dict[str, Any]] = field(default_factory=list)
    unverified_references: list[dict[str, Any]] = field(default_factory=list)
    charged_handler_failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.incomplete or self.unverified_references or self.charged_handler_failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "settled": len(self.settled),
            "failed": len(self.failed),
            "clean": self.clean,
            "incomplete": self.incomplete,
            "unverifiedReferences": self.unverified_references,
            "chargedHandlerFailures": self.charged_handler_failures,
        }


async def reconcile_audit_log(sink: AuditSink) -> ReconciliationReport:
    """Group audit entries by attempt and report anything needing follow-up."""
    by_attempt: dict[str, list[dict[str, Any]]] = {}
    for entry in await sink.events():
        aid = entry.get("attempt_id")
        if aid:
            by_attempt.setdefault(aid, []).append(entry)

    report = ReconciliationReport(attempts=len(by_attempt))
    for aid, entries in by_attempt.items():
        phases = {e.get("phase"): e for e in entries}
        completed = phases.get(AuditPhase.ATTEMPT_COMPLETED.value)
        settlement = phases.get(AuditPhase.SETTLEMENT_RESULT.value)
        handler = phases.get(AuditPhase.HANDLER_RESULT.value)

        if completed is None:
            last = [e for e in entries if e.get("phase") != AuditPhase.HANDLER_RESULT.value]
            tail = last[-1] if last else entries[-1]
            verified = phases.get(AuditPhase.VERIFICATION_RESULT.value)
            report.incomplete.append({
                "attempt_id": aid,
                "tool_id": tail.get("tool_id"),
                "principal": tail.get("principal"),
                "last_phase": tail.get("phase"),
                "last_result": tail.get("result"),
                # Past a valid verification, settlement may have been dispatched
                "check_chain": settlement is not None
                or (verified is not None and verified.get("result") == "valid"),
            })
        elif completed.get("success"):
            report.settled.append(aid)
        else:
            report.failed.append(aid)

        if settlement is not None and settlement.get("result") == "settled_unverified":
            report.unverified_references.append({
                "attempt_id": aid,
                "principal": settlement.get("principal"),
                "required_amount": settlement.get("required_amount"),
                "balance_before": settlement.get("balance_before"),
                "balance_after": settlement.get("balance_after"),
            })

        if handler is not None and handler.get("result") == "error":
            report.charged_handler_failures.append({
                "attempt_id": aid,
                "tool_id": handler.get("tool_id"),
                "principal": handler.get("principal"),
                "transaction_reference": handler.get("transaction_reference"),
                "detail": handler.get("detail"),
            })

    if not report.clean:
        logger.warning(
            "Reconciliation: %d incomplete, %d unverified, %d charged handler failures",
            len(report.incomplete), len(report.unverified_references),
            len(report.charged_handler_failures),
        )
    return report
