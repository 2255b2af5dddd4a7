"""Shared test fixtures: per-test SQLite database, settings, fake stage clients."""

from __future__ import annotations

from pathlib import Path

import pytest

from vidblog.clients import StageClients
from vidblog.db import Base, get_engine
from vidblog.models import FetchedAudio, GeneratedBlog, PublishResult, Transcript
from vidblog.pipeline.orchestrator import Orchestrator
from vidblog.settings import Settings
from vidblog.store import JobStore


class FakeFetcher:
    def __init__(self):
        self.calls: list[str] = []
        self.workdirs: list[Path] = []
        self.error: Exception | None = None

    async def fetch(self, url, *, workdir, max_size_bytes, timeout):
        self.calls.append(url)
        self.workdirs.append(workdir)
        video = workdir / "video.mp4"
        video.write_bytes(b"\x00" * 16)
        if self.error is not None:
            raise self.error
        audio = workdir / "audio.mp3"
        audio.write_bytes(b"fake audio")
        return FetchedAudio(audio_path=audio, size_bytes=16, source_format=".mp4")


class FakeTranscriber:
    def __init__(self, text: str = "hello world"):
        self.text = text
        self.calls: list[Path] = []
        self.error: Exception | None = None

    async def transcribe(self, audio_path, language=None):
        self.calls.append(audio_path)
        if self.error is not None:
            raise self.error
        return Transcript(text=self.text, language="en", confidence=0.98, duration_seconds=12.5)


class FakeGenerator:
    def __init__(self):
        self.calls: list[tuple[str, str | None]] = []
        self.error: Exception | None = None
        self.blog = GeneratedBlog(title="Hello", content="<p>hello</p>", word_count=2, excerpt="hello...")

    async def generate(self, transcript, title_hint=None):
        self.calls.append((transcript, title_hint))
        if self.error is not None:
            raise self.error
        return self.blog


class FakePublisher:
    def __init__(self):
        self.connected = True
        self.connection_checks = 0
        self.calls: list = []
        self.error: Exception | None = None

    async def test_connection(self, target):
        self.connection_checks += 1
        return self.connected

    async def publish(self, target, post):
        self.calls.append((target, post))
        if self.error is not None:
            raise self.error
        return PublishResult(external_id="101", url="https://blog.example.com/?p=101")


@pytest.fixture()
def engine(tmp_path):
    """File-backed SQLite so TestClient worker threads share the database."""
    eng = get_engine(f"sqlite:///{tmp_path / 'vidblog.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def store(engine):
    return JobStore(engine)


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'vidblog.db'}",
        log_dir=str(tmp_path / "logs"),
        temp_dir=str(tmp_path / "work"),
        api_tokens="tok-alice:alice,tok-bob:bob",
    )


@pytest.fixture()
def clients():
    return StageClients(
        fetcher=FakeFetcher(),
        transcriber=FakeTranscriber(),
        generator=FakeGenerator(),
        publisher=FakePublisher(),
    )


@pytest.fixture()
def orchestrator(store, clients, settings):
    return Orchestrator(
        store, clients.fetcher, clients.transcriber, clients.generator, clients.publisher, settings,
    )

