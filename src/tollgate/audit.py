"""AuditSink: the system of record for what was charged, to whom, when.

Every entry is one self-contained JSON object. Entries for one attempt
follow a fixed phase order; an early failure skips straight to
``attempt_completed``. The sink is separate from observability logging.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from tollgate.audit_backend import AuditBackend

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1


class AuditPhase(str, Enum):
    ATTEMPT_STARTED = "attempt_started"
    BALANCE_CHECKED = "balance_checked"
    AUTHORIZATION_BUILT = "authorization_built"
    VERIFICATION_RESULT = "verification_result"
    SETTLEMENT_RESULT = "settlement_result"
    ATTEMPT_COMPLETED = "attempt_completed"
    # Written by the dispatcher after a paid handler ran
    HANDLER_RESULT = "handler_result"


PHASE_ORDER: tuple[AuditPhase, ...] = (
    AuditPhase.ATTEMPT_STARTED,
    AuditPhase.BALANCE_CHECKED,
    AuditPhase.AUTHORIZATION_BUILT,
    AuditPhase.VERIFICATION_RESULT,
    AuditPhase.SETTLEMENT_RESULT,
    AuditPhase.ATTEMPT_COMPLETED,
)


class AuditWriteError(Exception):
    """The backend failed to persist an entry."""


def _json_default(value: Any) -> Any:
    # Decimal, Enum and anything else with a faithful str()
    if isinstance(value, Enum):
        return value.value
    return str(value)


class AuditSink:
    """Append-only audit log over an ``AuditBackend``.

    ``record`` returns only once the backend has made the entry durable,
    so callers can rely on "written before the next network call".
    """

    def __init__(self, backend: AuditBackend) -> None:
        self._backend = backend

    async def record(self, phase: AuditPhase, result: str, **fields: Any) -> dict[str, Any]:
        """Append one entry and return it as written.

        Raises AuditWriteError if the backend cannot persist it.
        """
        entry: dict[str, Any] = {
            "v": _SCHEMA_VERSION,
            "ts": datetime.now(timezone.utc).isoformat(),
            "phase": phase.value,
            "result": result,
        }
        entry.update(fields)
        line = json.dumps(entry, default=_json_default, separators=(",", ":"), sort_keys=False)
        try:
            await self._backend.append(line)
        except Exception as e:
            logger.error(
                "Audit write failed for %s/%s: %s",
                fields.get("attempt_id", "?"), phase.value, e,
            )
            raise AuditWriteError(str(e)) from e
        return entry

    async def events(self, attempt_id: str | None = None) -> list[dict[str, Any]]:
        """Replay entries in write order, optionally for one attempt.

        Unparseable lines are skipped with a warning rather than hiding
        every later entry.
        """
        entries: list[dict[str, Any]] = []
        for line in await self._backend.read_lines():
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt audit line: %.80s", line)
                continue
            if not isinstance(obj, dict):
                logger.warning("Skipping non-object audit line: %.80s", line)
                continue
            if attempt_id is None or obj.get("attempt_id") == attempt_id:
                entries.append(obj)
        return entries

    async def attempt_ids(self) -> list[str]:
        """Distinct attempt ids in first-seen order."""
        seen: dict[str, None] = {}
        for entry in await self.events():
            aid = entry.get("attempt_id")
            if aid:
                seen.setdefault(aid, None)
        return list(seen)
