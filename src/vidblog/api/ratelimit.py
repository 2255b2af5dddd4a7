"""Caller rate limiting for mutating API routes."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass
class RateLimitStatus:
    limit: int
    remaining: int
    reset_in: float


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool:
        """Consume one request from ``key``'s budget; False when exhausted."""
        ...

    def status(self, key: str) -> RateLimitStatus:
        ...


class InMemoryRateLimiter:
    """Fixed-window counter per key, local to one process.

    Multi-process deployments inject a shared implementation instead.
    """

    def __init__(self, max_requests: int = 100, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def _window(self, key: str, now: float) -> tuple[float, int]:
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0
        return started, count

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            started, count = self._window(key, now)
            if count >= self.max_requests:
                self._windows[key] = (started, count)
                return False
            self._windows[key] = (started, count + 1)
            self._prune(now)
            return True

    def status(self, key: str) -> RateLimitStatus:
        now = self._clock()
        with self._lock:
            started, count = self._window(key, now)
        return RateLimitStatus(
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_in=max(0.0, started + self.window_seconds - now),
        )

    def _prune(self, now: float) -> None:
        if len(self._windows) < 1024:
            return
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for k in expired:
            del self._windows[k]


def retry_after_header(seconds: float) -> str:
    return str(max(1, math.ceil(seconds)))
