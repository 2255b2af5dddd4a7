"""Video download and audio extraction (httpx streaming + ffmpeg)."""

from __future__ import annotations

import asyncio
import contextlib
import shutil
import uuid
from pathlib import Path

import httpx
import structlog

from vidblog.errors import StageClientError
from vidblog.models import FetchedAudio
from vidblog.statuses import ClientErrorKind
from vidblog.utils.http import create_async_client
from vidblog.utils.urls import is_valid_video_url, video_extension

logger = structlog.get_logger(__name__)

_CHUNK_SIZE = 1024 * 1024


class HttpVideoFetcher:
    """Fetch a direct video URL and extract an mp3 track with ffmpeg.

    When ffmpeg is not installed the downloaded container is handed to the
    transcriber as-is (Deepgram accepts common video containers).
    """

    def __init__(
        self,
        *,
        proxy_url: str | None = None,
        ffmpeg_bin: str = "ffmpeg",
        audio_bitrate_kbps: int = 128,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.proxy_url = proxy_url
        self.ffmpeg_bin = ffmpeg_bin
        self.audio_bitrate_kbps = audio_bitrate_kbps
        self._transport = transport

    async def fetch(self, url: str, *, workdir: Path, max_size_bytes: int, timeout: float) -> FetchedAudio:
        if not is_valid_video_url(url):
            raise StageClientError(ClientErrorKind.INVALID_FORMAT, f"Unsupported video URL: {url}")

        extension = video_extension(url) or ".mp4"
        video_path = workdir / f"video_{uuid.uuid4().hex[:8]}{extension}"
        size = await self._download(url, video_path, max_size_bytes=max_size_bytes, timeout=timeout)
        logger.info("video.downloaded", url=url, size_bytes=size)

        audio_path = await self._extract_audio(video_path, timeout=timeout)
        return FetchedAudio(audio_path=audio_path, size_bytes=size, source_format=extension)

    async def _download(self, url: str, dest: Path, *, max_size_bytes: int, timeout: float) -> int:
        downloaded = 0
        try:
            async with create_async_client(
                proxy_url=self.proxy_url, timeout=timeout, follow_redirects=True, transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as resp:
                    if resp.status_code >= 400:
                        raise StageClientError(
                            ClientErrorKind.NETWORK_ERROR, f"Failed to download video: HTTP {resp.status_code}"
                        )

                    declared = resp.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > max_size_bytes:
                        raise StageClientError(ClientErrorKind.TOO_LARGE, _too_large_message(int(declared), max_size_bytes))

                    content_type = resp.headers.get("content-type", "")
                    if content_type and not content_type.startswith(("video/", "application/octet-stream")):
                        # Some servers mislabel video; warn, don't fail
                        logger.debug("video.unexpected_content_type", url=url, content_type=content_type)

                    with open(dest, "wb") as f:
                        async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                            downloaded += len(chunk)
                            if downloaded > max_size_bytes:
                                raise StageClientError(ClientErrorKind.TOO_LARGE, _too_large_message(downloaded, max_size_bytes))
                            await asyncio.to_thread(f.write, chunk)
        except httpx.TimeoutException as exc:
            raise StageClientError(ClientErrorKind.TIMEOUT, "Download timed out") from exc
        except httpx.HTTPError as exc:
            raise StageClientError(ClientErrorKind.NETWORK_ERROR, f"Download failed: {exc}") from exc
        return downloaded

    async def _extract_audio(self, video_path: Path, *, timeout: float) -> Path:
        if shutil.which(self.ffmpeg_bin) is None:
            logger.warning("video.ffmpeg_missing", using=str(video_path))
            return video_path

        audio_path = video_path.with_name(f"audio_{video_path.stem}.mp3")
        proc = await asyncio.create_subprocess_exec(
            self.ffmpeg_bin, "-y", "-i", str(video_path),
            "-vn", "-acodec", "libmp3lame", "-ab", f"{self.audio_bitrate_kbps}k",
            str(audio_path),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError as exc:
            raise StageClientError(ClientErrorKind.TIMEOUT, "Audio extraction timed out") from exc
        finally:
            # However the wait ended, ffmpeg must not outlive the workdir
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        if proc.returncode != 0 or not audio_path.exists():
            tail = (stderr or b"").decode(errors="replace")[-300:]
            raise StageClientError(ClientErrorKind.INVALID_FORMAT, f"Audio extraction failed: {tail}")
        return audio_path


def _too_large_message(size: int, limit: int) -> str:
    return f"Video size ({size // (1024 * 1024)}MB) exceeds maximum size ({limit // (1024 * 1024)}MB)"
