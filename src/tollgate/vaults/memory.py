"""MemoryVault: in-process AuditBackend. Not durable; for tests and dry runs."""

from __future__ import annotations


class MemoryVault:
    def __init__(self) -> None:
        self._lines: list[str] = []

    async def append(self, line: str) -> None:
        self._lines.append(line)

    async def read_lines(self) -> list[str]:
        return list(self._lines)
