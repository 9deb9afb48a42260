"""JsonlFileVault: AuditBackend over a local append-only JSON Lines file.

Each ``append`` is one ``write`` on a descriptor opened with O_APPEND,
followed by fsync, under a process-wide lock. Concurrent attempts may
interleave lines but never bytes within a line.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonlFileVault:
    """Durable audit vault backed by a single file.

    Implements the tollgate ``AuditBackend`` protocol:

    - ``append(line) -> None``
    - ``read_lines() -> list[str]``

    The file is created on first append (parent directories too). Lines
    already present are never touched, so restarting a process simply
    continues the log.
    """

    def __init__(self, path: str | os.PathLike[str], fsync: bool = True) -> None:
        self._path = Path(path)
        self._fsync = fsync
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, line: str) -> None:
        data = (line.rstrip("\n") + "\n").encode("utf-8")
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
            try:
                os.write(fd, data)
                if self._fsync:
                    os.fsync(fd)
            finally:
                os.close(fd)

    def _read(self) -> list[str]:
        if not self._path.exists():
            return []
        with self._lock:
            text = self._path.read_text(encoding="utf-8")
        return [ln for ln in text.splitlines() if ln.strip()]

    async def append(self, line: str) -> None:
        await asyncio.to_thread(self._write, line)

    async def read_lines(self) -> list[str]:
        return await asyncio.to_thread(self._read)
