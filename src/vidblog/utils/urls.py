"""Source URL validation: scheme and video file extension checks."""

from __future__ import annotations

from pathlib import PurePosixPath
from urllib.parse import urlparse

from vidblog.errors import ValidationError

ALLOWED_SCHEMES = frozenset({"http", "https"})
VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".avi", ".mkv", ".flv", ".wmv")
MAX_URL_LENGTH = 2000


def video_extension(url: str) -> str | None:
    """Return the lower-cased extension of the URL path, or None."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    return suffix or None


def is_valid_video_url(url: object) -> bool:
    if not isinstance(url, str) or not url or len(url) > MAX_URL_LENGTH:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        return False
    return parsed.path.lower().endswith(VIDEO_EXTENSIONS)


def validate_video_url(url: object) -> str:
    """Return the URL unchanged, or raise ValidationError explaining why it was rejected."""
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("Video URL is required")
    if len(url) > MAX_URL_LENGTH:
        raise ValidationError("Invalid video URL format")
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        raise ValidationError("URL must use HTTP or HTTPS protocol", {"url": url})
    if not is_valid_video_url(url):
        raise ValidationError(
            f"Unsupported video format. Supported formats: {', '.join(VIDEO_EXTENSIONS)}",
            {"url": url},
        )
    return url
