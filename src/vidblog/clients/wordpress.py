"""WordPress REST API publisher (application-password Basic auth)."""

from __future__ import annotations

import httpx
import structlog

from vidblog.errors import StageClientError
from vidblog.models import BlogPost, PublishResult, PublishTarget
from vidblog.statuses import ClientErrorKind
from vidblog.utils.http import create_async_client, request_with_retry

logger = structlog.get_logger(__name__)


def normalize_site_url(url: str) -> str:
    """Strip a trailing slash and default the scheme to https."""
    normalized = url.strip().rstrip("/")
    if not normalized.startswith(("http://", "https://")):
        normalized = f"https://{normalized}"
    return normalized


class WordPressPublisher:
    def __init__(
        self,
        *,
        timeout: float = 30.0,
        proxy_url: str | None = None,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.proxy_url = proxy_url
        self.max_attempts = max_attempts
        self._transport = transport

    def _client(self, target: PublishTarget) -> httpx.AsyncClient:
        client = create_async_client(
            base_url=f"{normalize_site_url(target.site_url)}/wp-json/wp/v2",
            proxy_url=self.proxy_url,
            timeout=self.timeout,
            transport=self._transport,
        )
        client.auth = httpx.BasicAuth(target.username, target.app_password)
        return client

    async def _request(self, target: PublishTarget, method: str, path: str, **kwargs) -> dict:
        try:
            async with self._client(target) as client:
                resp = await request_with_retry(client, method, path, max_attempts=self.max_attempts, **kwargs)
        except httpx.HTTPError as exc:
            raise StageClientError(ClientErrorKind.SERVICE_ERROR, f"WordPress request failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise StageClientError(ClientErrorKind.AUTH_ERROR, "WordPress authentication failed")
        if resp.status_code >= 400:
            raise StageClientError(
                ClientErrorKind.SERVICE_ERROR, f"WordPress API error: {resp.status_code} - {resp.text[:300]}"
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise StageClientError(ClientErrorKind.SERVICE_ERROR, "WordPress returned a non-JSON response") from exc

    async def test_connection(self, target: PublishTarget) -> bool:
        try:
            await self._request(target, "GET", "/users/me")
        except StageClientError as exc:
            logger.warning("wordpress.connection_failed", site_url=target.site_url, error=exc.message)
            return False
        return True

    async def publish(self, target: PublishTarget, post: BlogPost) -> PublishResult:
        body = {"title": post.title, "content": post.content, "status": post.status}
        if post.excerpt:
            body["excerpt"] = post.excerpt
        created = await self._request(target, "POST", "/posts", json=body)
        if "id" not in created:
            raise StageClientError(ClientErrorKind.SERVICE_ERROR, "WordPress response did not include a post id")
        logger.info("wordpress.published", site_url=target.site_url, post_id=created["id"])
        return PublishResult(external_id=str(created["id"]), url=created.get("link"))
