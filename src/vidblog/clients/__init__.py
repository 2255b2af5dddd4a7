"""Stage client wiring."""

from __future__ import annotations

from dataclasses import dataclass

from vidblog.clients.base import BlogGenerator, Publisher, Transcriber, VideoFetcher
from vidblog.clients.deepgram import DeepgramTranscriber
from vidblog.clients.openai import OpenAIBlogGenerator
from vidblog.clients.video import HttpVideoFetcher
from vidblog.clients.wordpress import WordPressPublisher
from vidblog.settings import Settings


@dataclass
class StageClients:
    fetcher: VideoFetcher
    transcriber: Transcriber
    generator: BlogGenerator
    publisher: Publisher


def build_clients(settings: Settings) -> StageClients:
    """Instantiate the HTTP-backed stage clients from settings."""
    proxy = settings.proxy_url or None
    return StageClients(
        fetcher=HttpVideoFetcher(proxy_url=proxy),
        transcriber=DeepgramTranscriber(
            settings.deepgram_api_key,
            model=settings.deepgram_model,
            language=settings.deepgram_language,
            timeout=settings.deepgram_timeout,
            proxy_url=proxy,
        ),
        generator=OpenAIBlogGenerator(
            settings.openai_api_key,
            model=settings.openai_model,
            timeout=settings.openai_timeout,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
            proxy_url=proxy,
        ),
        publisher=WordPressPublisher(timeout=settings.publish_timeout, proxy_url=proxy),
    )
