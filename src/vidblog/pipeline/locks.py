"""Per-job mutual exclusion within one process."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class JobLocks:
    """One asyncio.Lock per job id, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, job_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(job_id, asyncio.Lock())
        self._refs[job_id] = self._refs.get(job_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[job_id] -= 1
            if self._refs[job_id] == 0:
                del self._refs[job_id]
                del self._locks[job_id]

    def __len__(self) -> int:
        return len(self._locks)
