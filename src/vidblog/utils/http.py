"""Shared HTTP client factory and retry helper for the stage clients."""

from __future__ import annotations

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from vidblog.statuses import ClientErrorKind

USER_AGENT = "vidblog/0.1"

RETRYABLE_STATUS = frozenset({429, 503})


def create_async_client(
    *,
    base_url: str = "",
    proxy_url: str | None = None,
    timeout: float = 30.0,
    headers: dict[str, str] | None = None,
    follow_redirects: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an httpx.AsyncClient with our User-Agent and optional proxy."""
    merged = {"User-Agent": USER_AGENT}
    if headers:
        merged.update(headers)
    return httpx.AsyncClient(
        base_url=base_url,
        headers=merged,
        timeout=timeout,
        proxy=proxy_url or None,
        follow_redirects=follow_redirects,
        transport=transport,
    )


def _should_retry(exc: BaseException) -> bool:
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in RETRYABLE_STATUS


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: int = 3,
    **kwargs,
) -> httpx.Response:
    """Send a request, retrying 429/503 with exponential backoff.

    Other statuses are returned as-is for the caller to classify. When retries
    are exhausted the last HTTPStatusError propagates.
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception(_should_retry),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    ):
        with attempt:
            resp = await client.request(method, url, **kwargs)
            if resp.status_code in RETRYABLE_STATUS:
                resp.raise_for_status()
    return resp


def status_error_kind(status_code: int) -> ClientErrorKind:
    """Map an HTTP error status onto a stage client failure kind."""
    if status_code in (401, 403):
        return ClientErrorKind.AUTH_ERROR
    if status_code == 429:
        return ClientErrorKind.RATE_LIMITED
    if status_code in (400, 413, 415, 422):
        return ClientErrorKind.BAD_INPUT
    return ClientErrorKind.SERVICE_ERROR


def retry_after_seconds(resp: httpx.Response) -> float | None:
    value = resp.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None
