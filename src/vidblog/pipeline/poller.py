"""Client-side job status polling."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from vidblog.pipeline.projector import is_terminal

logger = structlog.get_logger(__name__)

StatusFetcher = Callable[[], Awaitable[dict[str, Any]]]


class StatusQueryError(Exception):
    """The status endpoint answered with an error envelope or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


def http_status_fetcher(client: httpx.AsyncClient, job_id: str) -> StatusFetcher:
    """Build a fetcher that reads ``GET /jobs/{job_id}`` and returns its ``data``."""

    async def fetch() -> dict[str, Any]:
        resp = await client.get(f"/jobs/{job_id}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise StatusQueryError(f"Non-JSON status response (HTTP {resp.status_code})", resp.status_code) from exc
        if resp.status_code >= 400 or not body.get("success"):
            error = body.get("error") or {}
            raise StatusQueryError(
                error.get("message") or f"Status query failed (HTTP {resp.status_code})",
                resp.status_code,
                error.get("code"),
            )
        return body["data"]

    return fetch


class JobStatusPoller:
    """Query a job's status now, then every ``interval`` seconds, until it settles.

    Polling ends when the reported ``step`` is completed or failed, when
    ``max_retries`` queries have failed (``error`` then holds the last one),
    or when ``stop()`` is called. A result that lands after ``stop()`` is
    discarded. ``refetch()`` runs one extra query outside the cadence.
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        interval: float = 3.0,
        max_retries: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_update: Callable[[dict[str, Any]], None] | None = None,
    ):
        self._fetch_status = fetch_status
        self.interval = interval
        self.max_retries = max_retries
        self._sleep = sleep
        self._on_update = on_update

        self.status: dict[str, Any] | None = None
        self.error: BaseException | None = None
        self.queries = 0
        self.retry_count = 0
        self._task: asyncio.Task | None = None
        self._stopped = True

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def step(self) -> str | None:
        return self.status.get("step") if self.status else None

    def start(self) -> None:
        """Begin polling; restarting resets the failure count."""
        self.stop()
        self._stopped = False
        self.retry_count = 0
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        self._stopped = True
        if self._task is not None and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def refetch(self) -> dict[str, Any] | None:
        if await self._query(scheduled=False):
            self.stop()
        return self.status

    async def _run(self) -> None:
        while not self._stopped:
            if await self._query(scheduled=True):
                break
            await self._sleep(self.interval)
        self._stopped = True

    async def _query(self, *, scheduled: bool) -> bool:
        """Run one query; True when polling should end."""
        self.queries += 1
        try:
            status = await self._fetch_status()
        except Exception as exc:
            if scheduled and self._stopped:
                return True
            self.error = exc
            self.retry_count += 1
            logger.warning("poller.query_failed", attempt=self.retry_count, error=str(exc))
            if self.retry_count >= self.max_retries:
                logger.warning("poller.max_retries_reached", max_retries=self.max_retries)
                return True
            return False

        if scheduled and self._stopped:
            # stop() won the race; drop the late result
            return True
        self.status = status
        self.error = None
        if self._on_update is not None:
            self._on_update(status)
        if is_terminal(status.get("step", "")):
            return True
        return False

    async def __aenter__(self) -> JobStatusPoller:
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()
        await self.wait()
