"""Blog generation through the OpenAI chat completions API (JSON mode)."""

from __future__ import annotations

import json
import time

import httpx
import structlog

from vidblog.errors import StageClientError
from vidblog.models import GeneratedBlog, count_words
from vidblog.statuses import ClientErrorKind
from vidblog.utils.http import create_async_client, request_with_retry, retry_after_seconds, status_error_kind

logger = structlog.get_logger(__name__)

OPENAI_API_BASE = "https://api.openai.com/v1"

PLACEMENT_MARKERS = (
    "<!-- ADSENSE_TOP_BANNER -->",
    "<!-- ADSENSE_IN_ARTICLE -->",
    "<!-- ADSENSE_BOTTOM_BANNER -->",
)

SYSTEM_PROMPT = f"""\
You are an expert blog post writer and SEO specialist. Your task is to transform video transcripts into engaging, well-structured blog posts.

Requirements:
1. Write in a professional yet conversational tone
2. Use proper headings (H2, H3) for structure
3. Include SEO-friendly meta title and description
4. Suggest relevant keywords for SEO
5. Ensure the content is original and valuable
6. Include an engaging introduction and conclusion
7. Use bullet points and numbered lists where appropriate
8. Add these HTML comments for ad placement areas, verbatim:
   - {PLACEMENT_MARKERS[0]} at the beginning
   - {PLACEMENT_MARKERS[1]} after the first 2-3 paragraphs
   - {PLACEMENT_MARKERS[2]} before the conclusion

Output format (JSON):
{{
  "title": "Catchy blog post title",
  "content": "Full blog post content with HTML formatting",
  "excerpt": "2-3 sentence summary",
  "seoMetadata": {{
    "title": "SEO title (60 chars max)",
    "description": "SEO description (160 chars max)",
    "keywords": ["keyword1", "keyword2", "keyword3"],
    "ogTitle": "Open Graph title",
    "ogDescription": "Open Graph description"
  }},
  "wordCount": number
}}
"""


def build_user_prompt(transcript: str, title_hint: str | None = None) -> str:
    if title_hint:
        return (
            "Transform the following video transcript into a well-structured blog post. "
            f'Consider this title suggestion: "{title_hint}"\n\n{transcript}'
        )
    return f"Transform the following video transcript into a well-structured blog post:\n\n{transcript}"


class OpenAIBlogGenerator:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        max_tokens: int = 4000,
        temperature: float = 0.7,
        proxy_url: str | None = None,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.proxy_url = proxy_url
        self.max_attempts = max_attempts
        self._transport = transport

    async def generate(self, transcript: str, title_hint: str | None = None) -> GeneratedBlog:
        if not self.api_key:
            raise StageClientError(ClientErrorKind.AUTH_ERROR, "OpenAI API key is not configured")

        body = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(transcript, title_hint)},
            ],
            "response_format": {"type": "json_object"},
        }

        started = time.monotonic()
        try:
            async with create_async_client(
                base_url=OPENAI_API_BASE, proxy_url=self.proxy_url, timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"}, transport=self._transport,
            ) as client:
                resp = await request_with_retry(
                    client, "POST", "/chat/completions", json=body, max_attempts=self.max_attempts,
                )
        except httpx.HTTPStatusError as exc:
            # 429/503 still failing after retries
            raise _error_from_response(exc.response) from exc
        except httpx.HTTPError as exc:
            raise StageClientError(ClientErrorKind.SERVICE_ERROR, f"OpenAI request failed: {exc}") from exc

        if resp.status_code != 200:
            raise _error_from_response(resp)

        payload = resp.json()
        usage = payload.get("usage") or {}
        logger.info(
            "openai.completed",
            model=payload.get("model"),
            duration_ms=int((time.monotonic() - started) * 1000),
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )
        return parse_completion(payload)


def _error_from_response(resp: httpx.Response) -> StageClientError:
    try:
        error = (resp.json() or {}).get("error") or {}
    except ValueError:
        error = {}
    code = error.get("code") or error.get("type") or ""
    message = error.get("message") or resp.text[:300]
    if code == "insufficient_quota":
        return StageClientError(ClientErrorKind.QUOTA_EXCEEDED, "OpenAI API quota exceeded")
    kind = status_error_kind(resp.status_code)
    if kind == ClientErrorKind.BAD_INPUT:
        # A rejected prompt is the model service failing this stage, not a caller error
        kind = ClientErrorKind.SERVICE_ERROR
    return StageClientError(kind, f"OpenAI returned {resp.status_code}: {message}", retry_after=retry_after_seconds(resp))


def parse_completion(payload: dict) -> GeneratedBlog:
    """Extract the JSON blog object from a chat completion response."""
    choices = payload.get("choices") or []
    content = ((choices[0] if choices else {}).get("message") or {}).get("content")
    if not content:
        raise StageClientError(ClientErrorKind.SERVICE_ERROR, "Empty response from OpenAI")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise StageClientError(ClientErrorKind.SERVICE_ERROR, "Invalid JSON response from OpenAI") from exc
    if not isinstance(data, dict) or not data.get("title") or not data.get("content"):
        raise StageClientError(ClientErrorKind.SERVICE_ERROR, "Missing required fields in OpenAI response")

    missing = [m for m in PLACEMENT_MARKERS if m not in data["content"]]
    if missing:
        logger.warning("openai.placement_markers_missing", missing=missing)

    return GeneratedBlog(
        title=data["title"],
        content=data["content"],
        word_count=data.get("wordCount") or count_words(data["content"]),
        excerpt=data.get("excerpt"),
        seo_metadata=data.get("seoMetadata"),
    )
