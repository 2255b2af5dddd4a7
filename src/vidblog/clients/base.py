"""Stage client contracts consumed by the orchestrator."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from vidblog.models import BlogPost, FetchedAudio, GeneratedBlog, PublishResult, PublishTarget, Transcript


class VideoFetcher(Protocol):
    """Downloads a video and extracts its audio track into ``workdir``."""

    async def fetch(self, url: str, *, workdir: Path, max_size_bytes: int, timeout: float) -> FetchedAudio:
        """Fails with StageClientError: invalid_format | too_large | timeout | network_error."""
        ...


class Transcriber(Protocol):
    async def transcribe(self, audio_path: Path, language: str | None = None) -> Transcript:
        """Fails with StageClientError: auth_error | rate_limited | bad_input | service_error."""
        ...


class BlogGenerator(Protocol):
    async def generate(self, transcript: str, title_hint: str | None = None) -> GeneratedBlog:
        """Fails with StageClientError: auth_error | rate_limited | quota_exceeded | service_error.

        ``content`` carries three ordered placement markers (top/mid/bottom)
        that callers keep verbatim and never interpret.
        """
        ...


class Publisher(Protocol):
    async def test_connection(self, target: PublishTarget) -> bool:
        ...

    async def publish(self, target: PublishTarget, post: BlogPost) -> PublishResult:
        """Fails with StageClientError: auth_error | service_error."""
        ...
