"""Abstract persistence interface for the payment audit log.

Defines the AuditBackend Protocol that AuditSink depends on.
Concrete implementations live in ``tollgate.vaults``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AuditBackend(Protocol):
    """Append-only durable store of serialized audit entries.

    ``append`` must write the whole line atomically and must not return
    until the line is durable. Nothing may rewrite or delete a prior line.
    """

    async def append(self, line: str) -> None: ...

    async def read_lines(self) -> list[str]: ...
