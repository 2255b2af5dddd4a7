"""Deepgram pre-recorded transcription over the REST API."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import structlog

from vidblog.errors import StageClientError
from vidblog.models import Transcript
from vidblog.statuses import ClientErrorKind
from vidblog.utils.http import create_async_client, request_with_retry, retry_after_seconds, status_error_kind

logger = structlog.get_logger(__name__)

DEEPGRAM_API_BASE = "https://api.deepgram.com/v1"

_CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
}


class DeepgramTranscriber:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = "nova-2",
        language: str = "en-US",
        timeout: float = 30.0,
        proxy_url: str | None = None,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.language = language
        self.timeout = timeout
        self.proxy_url = proxy_url
        self.max_attempts = max_attempts
        self._transport = transport

    async def transcribe(self, audio_path: Path, language: str | None = None) -> Transcript:
        if not self.api_key:
            raise StageClientError(ClientErrorKind.AUTH_ERROR, "Deepgram API key is not configured")

        try:
            audio = await asyncio.to_thread(audio_path.read_bytes)
        except OSError as exc:
            raise StageClientError(ClientErrorKind.BAD_INPUT, f"Cannot read audio file: {exc}") from exc
        if not audio:
            raise StageClientError(ClientErrorKind.BAD_INPUT, "Audio file is empty")

        params = {
            "model": self.model,
            "language": language or self.language,
            "smart_format": "true",
            "punctuate": "true",
            "paragraphs": "true",
        }
        headers = {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": _CONTENT_TYPES.get(audio_path.suffix.lower(), "audio/mpeg"),
        }

        try:
            async with create_async_client(
                base_url=DEEPGRAM_API_BASE, proxy_url=self.proxy_url, timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await request_with_retry(
                    client, "POST", "/listen",
                    params=params, headers=headers, content=audio, max_attempts=self.max_attempts,
                )
        except httpx.HTTPStatusError as exc:
            raise StageClientError(
                status_error_kind(exc.response.status_code),
                f"Deepgram returned {exc.response.status_code} after retries",
                retry_after=retry_after_seconds(exc.response),
            ) from exc
        except httpx.TimeoutException as exc:
            raise StageClientError(ClientErrorKind.SERVICE_ERROR, "Deepgram request timed out") from exc
        except httpx.HTTPError as exc:
            raise StageClientError(ClientErrorKind.SERVICE_ERROR, f"Deepgram request failed: {exc}") from exc

        if resp.status_code != 200:
            # Body may echo request details; keep it short
            raise StageClientError(
                status_error_kind(resp.status_code),
                f"Deepgram returned {resp.status_code}: {resp.text[:300]}",
                retry_after=retry_after_seconds(resp),
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise StageClientError(ClientErrorKind.SERVICE_ERROR, "Failed to parse Deepgram response JSON") from exc

        transcript = parse_deepgram_response(payload)
        if not transcript.text:
            raise StageClientError(ClientErrorKind.BAD_INPUT, "No speech detected in audio")
        logger.info(
            "deepgram.transcribed",
            chars=len(transcript.text),
            duration_seconds=transcript.duration_seconds,
            confidence=transcript.confidence,
        )
        return transcript


def parse_deepgram_response(payload: dict) -> Transcript:
    """Build a Transcript from a ``/listen`` response.

    Paragraph text is preferred (joined by blank lines); the flat alternative
    transcript is the fallback.
    """
    results = payload.get("results") or {}
    channels = results.get("channels") or [{}]
    alternatives = channels[0].get("alternatives") or [{}]
    best = alternatives[0]

    text = ""
    paragraphs = (best.get("paragraphs") or {}).get("paragraphs") or []
    parts = []
    for para in paragraphs:
        para_text = " ".join(s.get("text", "") for s in para.get("sentences", [])).strip()
        if para_text:
            parts.append(para_text)
    if parts:
        text = "\n\n".join(parts)
    else:
        text = (best.get("transcript") or "").strip()

    metadata = payload.get("metadata") or {}
    detected = channels[0].get("detected_language")
    return Transcript(
        text=text,
        language=detected,
        confidence=best.get("confidence"),
        duration_seconds=metadata.get("duration"),
    )
