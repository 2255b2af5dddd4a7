"""Tests for the pipeline orchestrator stages and the composed workflow."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from unittest.mock import patch

import pytest
import sqlalchemy as sa

from vidblog.db import JobRow
from vidblog.errors import (
    AuthenticationError,
    GenerationServiceError,
    PublishServiceError,
    RateLimitError,
    StageClientError,
    StaleStateError,
    TranscriptionServiceError,
    ValidationError,
    VideoProcessingError,
)
from vidblog.models import PublishTarget
from vidblog.pipeline.orchestrator import Orchestrator
from vidblog.pipeline.projector import project_step
from vidblog.statuses import ClientErrorKind, PipelineStage, ProcessingStep, PublishState, StageState

VIDEO_URL = "https://example.com/video.mp4"
TARGET = PublishTarget(site_url="https://blog.example.com", username="editor", app_password="abcd efgh")


def _orchestrator(store, clients, settings) -> Orchestrator:
    return Orchestrator(store, clients.fetcher, clients.transcriber, clients.generator, clients.publisher, settings)


def _generated(orchestrator, store, publish=False):
    job = store.create_job("alice", VIDEO_URL, publish_requested=publish)
    asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))
    asyncio.run(orchestrator.run_generate("alice", job.id))
    return job


class TestFetchTranscribe:
    def test_success_stores_transcript(self, orchestrator, store, clients):
        job = store.create_job("alice", VIDEO_URL)

        transcript = asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        assert transcript.text == "hello world"
        reloaded = store.get_job(job.id, "alice")
        assert reloaded.stage_state == StageState.GENERATING
        assert reloaded.transcript == "hello world"
        assert reloaded.transcript_language == "en"
        assert reloaded.duration_seconds == 12.5
        assert clients.fetcher.calls == [VIDEO_URL]

    def test_temp_dir_removed_after_success(self, orchestrator, store, clients):
        job = store.create_job("alice", VIDEO_URL)
        asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))
        assert not clients.fetcher.workdirs[0].exists()

    def test_cached_transcript_skips_clients(self, orchestrator, store, clients):
        job = store.create_job("alice", VIDEO_URL)
        asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        again = asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        assert again.text == "hello world"
        assert len(clients.fetcher.calls) == 1
        assert len(clients.transcriber.calls) == 1

    def test_fetch_failure_marks_job_failed(self, orchestrator, store, clients):
        clients.fetcher.error = StageClientError(ClientErrorKind.NETWORK_ERROR, "HTTP 404 downloading video")
        job = store.create_job("alice", VIDEO_URL)

        with pytest.raises(VideoProcessingError) as exc_info:
            asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        assert exc_info.value.details["clientKind"] == "network_error"
        failed = store.get_job(job.id, "alice")
        assert failed.stage_state == StageState.FAILED
        assert failed.failure_reason.kind == "VideoProcessingError"
        assert failed.failure_reason.stage == PipelineStage.FETCH_TRANSCRIBE
        assert failed.transcript is None
        assert clients.transcriber.calls == []
        assert not clients.fetcher.workdirs[0].exists()

    def test_transcription_failure(self, orchestrator, store, clients):
        clients.transcriber.error = StageClientError(ClientErrorKind.SERVICE_ERROR, "Deepgram 500")
        job = store.create_job("alice", VIDEO_URL)

        with pytest.raises(TranscriptionServiceError):
            asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        failed = store.get_job(job.id, "alice")
        assert failed.stage_state == StageState.FAILED
        assert failed.failure_reason.kind == "TranscriptionServiceError"
        assert failed.transcript is None

    def test_empty_transcript_is_a_failure(self, orchestrator, store, clients):
        clients.transcriber.text = "   "
        job = store.create_job("alice", VIDEO_URL)

        with pytest.raises(TranscriptionServiceError, match="no text"):
            asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))
        assert store.get_job(job.id, "alice").transcript is None

    def test_retry_after_failure_clears_reason(self, orchestrator, store, clients):
        clients.fetcher.error = StageClientError(ClientErrorKind.TIMEOUT, "slow")
        job = store.create_job("alice", VIDEO_URL)
        with pytest.raises(VideoProcessingError):
            asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        clients.fetcher.error = None
        asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        retried = store.get_job(job.id, "alice")
        assert retried.stage_state == StageState.GENERATING
        assert retried.failure_reason is None

    def test_download_deadline_enforced(self, store, clients, settings):
        class SlowFetcher:
            async def fetch(self, url, *, workdir, max_size_bytes, timeout):
                await asyncio.sleep(5)

        orchestrator = Orchestrator(
            store, SlowFetcher(), clients.transcriber, clients.generator, clients.publisher,
            settings.model_copy(update={"video_download_deadline": 0.05}),
        )
        job = store.create_job("alice", VIDEO_URL)

        with pytest.raises(VideoProcessingError) as exc_info:
            asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        assert exc_info.value.details["clientKind"] == "timeout"
        assert store.get_job(job.id, "alice").stage_state == StageState.FAILED

    def test_other_owner_not_found(self, orchestrator, store, clients):
        from vidblog.errors import NotFoundError

        job = store.create_job("alice", VIDEO_URL)
        with pytest.raises(NotFoundError):
            asyncio.run(orchestrator.run_fetch_transcribe("bob", job.id))
        assert clients.fetcher.calls == []

    def test_locks_released(self, orchestrator, store):
        job = store.create_job("alice", VIDEO_URL)
        asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))
        assert len(orchestrator.locks) == 0


class GatedFetcher:
    """Blocks inside fetch until the test opens the gate."""

    def __init__(self, inner):
        self.inner = inner
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []

    async def fetch(self, url, *, workdir, max_size_bytes, timeout):
        self.calls.append(url)
        await self.gate.wait()
        return await self.inner.fetch(url, workdir=workdir, max_size_bytes=max_size_bytes, timeout=timeout)


class TestConcurrency:
    def test_same_process_callers_share_one_fetch(self, store, clients, settings):
        fetcher = GatedFetcher(clients.fetcher)
        orchestrator = Orchestrator(
            store, fetcher, clients.transcriber, clients.generator, clients.publisher, settings,
        )
        job = store.create_job("alice", VIDEO_URL)

        async def scenario():
            fetcher.gate = asyncio.Event()
            first = asyncio.create_task(orchestrator.run_fetch_transcribe("alice", job.id))
            second = asyncio.create_task(orchestrator.run_fetch_transcribe("alice", job.id))
            while not fetcher.calls:
                await asyncio.sleep(0)
            fetcher.gate.set()
            return await asyncio.gather(first, second)

        a, b = asyncio.run(scenario())

        assert a.text == b.text == "hello world"
        assert fetcher.calls == [VIDEO_URL]
        assert len(clients.transcriber.calls) == 1

    def test_separate_workers_one_wins(self, store, clients, settings):
        """Two orchestrators with independent locks stand in for two processes."""
        fetcher = GatedFetcher(clients.fetcher)
        worker_a = Orchestrator(store, fetcher, clients.transcriber, clients.generator, clients.publisher, settings)
        worker_b = Orchestrator(store, fetcher, clients.transcriber, clients.generator, clients.publisher, settings)
        job = store.create_job("alice", VIDEO_URL)

        async def scenario():
            fetcher.gate = asyncio.Event()
            first = asyncio.create_task(worker_a.run_fetch_transcribe("alice", job.id))
            while not fetcher.calls:
                await asyncio.sleep(0)
            with pytest.raises(StaleStateError):
                await worker_b.run_fetch_transcribe("alice", job.id)
            fetcher.gate.set()
            return await first

        transcript = asyncio.run(scenario())

        assert transcript.text == "hello world"
        assert fetcher.calls == [VIDEO_URL]
        assert store.get_job(job.id, "alice").stage_state == StageState.GENERATING

    def test_store_calls_leave_the_event_loop_thread(self, orchestrator, store):
        job = store.create_job("alice", VIDEO_URL)
        store_threads: list[int] = []
        get_job = store.get_job

        def recording_get_job(*args, **kwargs):
            store_threads.append(threading.get_ident())
            return get_job(*args, **kwargs)

        async def scenario():
            await orchestrator.run_fetch_transcribe("alice", job.id)
            return threading.get_ident()

        with patch.object(store, "get_job", side_effect=recording_get_job):
            loop_thread = asyncio.run(scenario())

        assert store_threads
        assert loop_thread not in store_threads


class TestGenerate:
    def test_generate_completes_job(self, orchestrator, store, clients):
        job = store.create_job("alice", VIDEO_URL)
        asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        artifact = asyncio.run(orchestrator.run_generate("alice", job.id, title_hint="My talk"))

        assert artifact.title == "Hello"
        assert artifact.publish_state == PublishState.DRAFT
        assert artifact.word_count == 1
        assert clients.generator.calls == [("hello world", "My talk")]
        assert store.get_job(job.id, "alice").stage_state == StageState.COMPLETED

    def test_generate_is_idempotent(self, orchestrator, store, clients):
        job = _generated(orchestrator, store)
        first = store.get_artifact(job.id)

        again = asyncio.run(orchestrator.run_generate("alice", job.id))

        assert again.id == first.id
        assert (again.title, again.content) == (first.title, first.content)
        assert len(clients.generator.calls) == 1

    def test_without_transcript_rejected(self, orchestrator, store, clients):
        job = store.create_job("alice", VIDEO_URL)
        with pytest.raises(ValidationError, match="no transcript"):
            asyncio.run(orchestrator.run_generate("alice", job.id))
        assert clients.generator.calls == []

    def test_inline_transcript_creates_job(self, orchestrator, store, clients):
        artifact = asyncio.run(orchestrator.run_generate("alice", transcript="a talk about tests"))

        job = store.get_job(artifact.job_id, "alice")
        assert job.source_url is None
        assert job.transcript == "a talk about tests"
        assert job.stage_state == StageState.COMPLETED
        assert clients.fetcher.calls == []

    def test_job_and_transcript_together_rejected(self, orchestrator, store):
        job = store.create_job("alice", VIDEO_URL)
        with pytest.raises(ValidationError):
            asyncio.run(orchestrator.run_generate("alice", job.id, transcript="inline"))

    def test_overlong_inline_transcript_rejected(self, store, clients, settings):
        orchestrator = _orchestrator(store, clients, settings.model_copy(update={"max_transcript_chars": 10}))

        with pytest.raises(ValidationError, match="too long"):
            asyncio.run(orchestrator.run_generate("alice", transcript="x" * 11))

        assert store.list_jobs("alice") == []
        assert clients.generator.calls == []

    def test_empty_inline_transcript_rejected(self, orchestrator, store):
        with pytest.raises(ValidationError):
            asyncio.run(orchestrator.run_generate("alice", transcript="  "))
        assert store.list_jobs("alice") == []

    def test_failure_recorded_as_last_error(self, orchestrator, store, clients):
        clients.generator.error = StageClientError(ClientErrorKind.SERVICE_ERROR, "model overloaded")
        job = store.create_job("alice", VIDEO_URL)
        asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        with pytest.raises(GenerationServiceError):
            asyncio.run(orchestrator.run_generate("alice", job.id))

        reloaded = store.get_job(job.id, "alice")
        assert reloaded.stage_state == StageState.GENERATING
        assert reloaded.failure_reason is None
        assert reloaded.last_error.kind == "GenerationServiceError"
        assert store.get_artifact(job.id) is None

        clients.generator.error = None
        asyncio.run(orchestrator.run_generate("alice", job.id))
        assert store.get_job(job.id, "alice").last_error is None

    def test_rate_limited_maps_to_rate_limit_error(self, orchestrator, store, clients):
        clients.generator.error = StageClientError(ClientErrorKind.RATE_LIMITED, "slow down", retry_after=20)
        job = store.create_job("alice", VIDEO_URL)
        asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        with pytest.raises(RateLimitError) as exc_info:
            asyncio.run(orchestrator.run_generate("alice", job.id))
        assert exc_info.value.retry_after == 20

    def test_unexpected_exception_wrapped(self, orchestrator, store, clients):
        clients.generator.error = RuntimeError("socket closed")
        job = store.create_job("alice", VIDEO_URL)
        asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        with pytest.raises(GenerationServiceError) as exc_info:
            asyncio.run(orchestrator.run_generate("alice", job.id))
        assert exc_info.value.details == {"exception": "RuntimeError", "stage": "generate", "jobId": job.id}

    def test_inline_failure_names_job_for_retry(self, orchestrator, store, clients):
        clients.generator.error = StageClientError(ClientErrorKind.SERVICE_ERROR, "OpenAI 500")

        with pytest.raises(GenerationServiceError) as exc_info:
            asyncio.run(orchestrator.run_generate("alice", transcript="a talk about testing"))

        job_id = exc_info.value.details["jobId"]
        assert store.get_job(job_id, "alice").transcript == "a talk about testing"

        clients.generator.error = None
        artifact = asyncio.run(orchestrator.run_generate("alice", job_id))

        assert artifact.job_id == job_id
        assert len(store.list_jobs("alice")) == 1


class TestPublish:
    def test_publish_then_cached(self, orchestrator, store, clients):
        job = _generated(orchestrator, store, publish=True)
        store.save_publish_target("alice", TARGET)

        first = asyncio.run(orchestrator.run_publish("alice", job.id))
        second = asyncio.run(orchestrator.run_publish("alice", job.id))

        assert first.external_post_ref == "101"
        assert first.already_published is False
        assert second.external_post_ref == "101"
        assert second.already_published is True
        assert len(clients.publisher.calls) == 1

        target, post = clients.publisher.calls[0]
        assert target.site_url == TARGET.site_url
        assert post.title == "Hello"
        assert post.status == "publish"

        reloaded = store.get_job(job.id, "alice")
        assert reloaded.stage_state == StageState.COMPLETED
        assert reloaded.publish_requested is False
        assert store.get_artifact(job.id).publish_state == PublishState.PUBLISHED

    def test_explicit_target_overrides_saved(self, orchestrator, store, clients):
        job = _generated(orchestrator, store)
        store.save_publish_target("alice", TARGET)
        other = PublishTarget(site_url="https://other.example", username="u", app_password="p")

        asyncio.run(orchestrator.run_publish("alice", job.id, other))

        assert clients.publisher.calls[0][0].site_url == "https://other.example"

    def test_failed_connection_keeps_draft(self, orchestrator, store, clients):
        clients.publisher.connected = False
        job = _generated(orchestrator, store, publish=True)

        with pytest.raises(AuthenticationError):
            asyncio.run(orchestrator.run_publish("alice", job.id, TARGET))

        reloaded = store.get_job(job.id, "alice")
        assert reloaded.stage_state == StageState.COMPLETED
        assert reloaded.publish_requested is False
        assert reloaded.last_error.kind == "AuthenticationError"
        assert store.get_artifact(job.id).publish_state == PublishState.DRAFT
        assert clients.publisher.calls == []

    def test_publisher_auth_error(self, orchestrator, store, clients):
        clients.publisher.error = StageClientError(ClientErrorKind.AUTH_ERROR, "401 from site")
        job = _generated(orchestrator, store)

        with pytest.raises(AuthenticationError, match="401"):
            asyncio.run(orchestrator.run_publish("alice", job.id, TARGET))

    def test_publisher_service_error_then_retry(self, orchestrator, store, clients):
        clients.publisher.error = StageClientError(ClientErrorKind.SERVICE_ERROR, "500 from site")
        job = _generated(orchestrator, store)

        with pytest.raises(PublishServiceError):
            asyncio.run(orchestrator.run_publish("alice", job.id, TARGET))
        assert store.get_job(job.id, "alice").last_error.kind == "PublishServiceError"

        clients.publisher.error = None
        outcome = asyncio.run(orchestrator.run_publish("alice", job.id, TARGET))
        assert outcome.external_post_ref == "101"
        assert store.get_job(job.id, "alice").last_error is None

    def test_no_target_rejected(self, orchestrator, store, clients):
        job = _generated(orchestrator, store, publish=True)

        with pytest.raises(ValidationError, match="publish target"):
            asyncio.run(orchestrator.run_publish("alice", job.id))

        assert store.get_job(job.id, "alice").publish_requested is False
        assert clients.publisher.connection_checks == 0

    def test_no_artifact_rejected(self, orchestrator, store):
        job = store.create_job("alice", VIDEO_URL)
        with pytest.raises(ValidationError, match="run generation first"):
            asyncio.run(orchestrator.run_publish("alice", job.id, TARGET))


class HangingPublisher:
    """Connects, then blocks inside publish until the caller is cancelled."""

    def __init__(self):
        self.started = asyncio.Event()

    async def test_connection(self, target):
        return True

    async def publish(self, target, post):
        self.started.set()
        await asyncio.Event().wait()


class HangingTranscriber:
    def __init__(self):
        self.started = asyncio.Event()

    async def transcribe(self, audio_path, language=None):
        self.started.set()
        await asyncio.Event().wait()


def _cancel_midway(call, started):
    async def scenario():
        task = asyncio.create_task(call())
        await started()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def _leave_in_flight(engine, job_id, state):
    """Put the job in ``state`` as a worker that died long ago would have left it."""
    with engine.begin() as conn:
        conn.execute(
            sa.update(JobRow)
            .where(JobRow.id == job_id)
            .values(stage_state=str(state), updated_at="2000-01-01T00:00:00.000000+00:00")
        )


class TestInterruptedStages:
    def test_cancelled_publish_returns_job_to_completed(self, store, clients, settings):
        publisher = HangingPublisher()
        orchestrator = Orchestrator(store, clients.fetcher, clients.transcriber, clients.generator, publisher, settings)
        job = _generated(orchestrator, store, publish=True)

        _cancel_midway(lambda: orchestrator.run_publish("alice", job.id, TARGET), publisher.started.wait)

        released = store.get_job(job.id, "alice")
        assert released.stage_state == StageState.COMPLETED
        assert released.publish_requested is False
        assert released.last_error.kind == "PublishServiceError"
        assert project_step(released, store.get_artifact(job.id)) == ProcessingStep.COMPLETED
        assert len(orchestrator.locks) == 0

        orchestrator.publisher = clients.publisher
        outcome = asyncio.run(orchestrator.run_publish("alice", job.id, TARGET))

        assert outcome.external_post_ref == "101"
        assert store.get_artifact(job.id).publish_state == PublishState.PUBLISHED

    def test_cancelled_fetch_marks_job_failed(self, store, clients, settings):
        fetcher = GatedFetcher(clients.fetcher)
        orchestrator = Orchestrator(store, fetcher, clients.transcriber, clients.generator, clients.publisher, settings)
        job = store.create_job("alice", VIDEO_URL)

        async def fetch_started():
            while not fetcher.calls:
                await asyncio.sleep(0)

        def run():
            fetcher.gate = asyncio.Event()
            return orchestrator.run_fetch_transcribe("alice", job.id)

        _cancel_midway(run, fetch_started)

        failed = store.get_job(job.id, "alice")
        assert failed.stage_state == StageState.FAILED
        assert failed.failure_reason.kind == "VideoProcessingError"
        assert failed.failure_reason.stage == PipelineStage.FETCH_TRANSCRIBE
        assert "interrupted" in failed.failure_reason.message
        assert project_step(failed, None) == ProcessingStep.FAILED
        assert list(Path(settings.temp_dir).iterdir()) == []

        orchestrator.fetcher = clients.fetcher
        transcript = asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        assert transcript.text == "hello world"
        assert store.get_job(job.id, "alice").failure_reason is None

    def test_cancelled_transcription_marks_job_failed(self, store, clients, settings):
        transcriber = HangingTranscriber()
        orchestrator = Orchestrator(store, clients.fetcher, transcriber, clients.generator, clients.publisher, settings)
        job = store.create_job("alice", VIDEO_URL)

        _cancel_midway(lambda: orchestrator.run_fetch_transcribe("alice", job.id), transcriber.started.wait)

        failed = store.get_job(job.id, "alice")
        assert failed.stage_state == StageState.FAILED
        assert failed.transcript is None

    def test_stale_fetch_is_reclaimed(self, orchestrator, store, engine):
        job = store.create_job("alice", VIDEO_URL)
        _leave_in_flight(engine, job.id, StageState.TRANSCRIBING)

        transcript = asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))

        assert transcript.text == "hello world"
        assert store.get_job(job.id, "alice").stage_state == StageState.GENERATING

    def test_fresh_fetch_is_not_reclaimed(self, orchestrator, store, clients):
        job = store.create_job("alice", VIDEO_URL)
        store.update_job_stage(job.id, StageState.PENDING, StageState.FETCHING)

        with pytest.raises(StaleStateError):
            asyncio.run(orchestrator.run_fetch_transcribe("alice", job.id))
        assert clients.fetcher.calls == []

    def test_stale_publish_is_reclaimed(self, orchestrator, store, engine, clients):
        job = _generated(orchestrator, store, publish=True)
        _leave_in_flight(engine, job.id, StageState.PUBLISHING)

        outcome = asyncio.run(orchestrator.run_publish("alice", job.id, TARGET))

        assert outcome.external_post_ref == "101"
        assert store.get_job(job.id, "alice").stage_state == StageState.COMPLETED


class TestSavePublishTarget:
    def test_verified_target_saved(self, orchestrator, store, clients):
        asyncio.run(orchestrator.save_publish_target("alice", TARGET))
        assert store.get_publish_target("alice").username == "editor"
        assert clients.publisher.connection_checks == 1

    def test_unverified_target_not_saved(self, orchestrator, store, clients):
        clients.publisher.connected = False
        with pytest.raises(AuthenticationError):
            asyncio.run(orchestrator.save_publish_target("alice", TARGET))
        assert store.get_publish_target("alice") is None


class TestCompleteWorkflow:
    def test_full_workflow_with_publish(self, orchestrator, store, clients):
        report = asyncio.run(orchestrator.run_complete_workflow("alice", VIDEO_URL, publish=True, target=TARGET))

        assert report.status == StageState.COMPLETED
        assert report.transcript.text == "hello world"
        assert report.blog.publish_state == PublishState.PUBLISHED
        assert report.publish.external_post_ref == "101"
        assert report.failed_stage is None
        assert store.get_job(report.job_id, "alice").stage_state == StageState.COMPLETED

    def test_workflow_without_publish(self, orchestrator, clients):
        report = asyncio.run(orchestrator.run_complete_workflow("alice", VIDEO_URL))

        assert report.status == StageState.COMPLETED
        assert report.publish is None
        assert report.blog.publish_state == PublishState.DRAFT
        assert clients.publisher.calls == []

    def test_stops_at_first_failure(self, orchestrator, store, clients):
        clients.fetcher.error = StageClientError(ClientErrorKind.TOO_LARGE, "Video exceeds 500MB")

        report = asyncio.run(orchestrator.run_complete_workflow("alice", VIDEO_URL, publish=True, target=TARGET))

        assert report.status == StageState.FAILED
        assert report.failed_stage == PipelineStage.FETCH_TRANSCRIBE
        assert report.error["code"] == "VIDEO_PROCESSING_ERROR"
        assert clients.generator.calls == []
        assert clients.publisher.calls == []
        job = store.get_job(report.job_id, "alice")
        assert job.stage_state == StageState.FAILED
        assert job.publish_requested is False

    def test_generation_failure_reported(self, orchestrator, clients):
        clients.generator.error = StageClientError(ClientErrorKind.QUOTA_EXCEEDED, "quota")

        report = asyncio.run(orchestrator.run_complete_workflow("alice", VIDEO_URL))

        assert report.failed_stage == PipelineStage.GENERATE
        assert report.error["code"] == "GENERATION_SERVICE_ERROR"
        assert report.transcript.text == "hello world"

    def test_invalid_url_raises_before_job(self, orchestrator, store):
        with pytest.raises(ValidationError):
            asyncio.run(orchestrator.run_complete_workflow("alice", "https://example.com/notes.pdf"))
        assert store.list_jobs("alice") == []
