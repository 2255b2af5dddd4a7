"""Pipeline orchestrator: fetch+transcribe, generate and publish stages for one job.

Each stage is re-enterable. Fetch+transcribe returns the stored transcript
when one exists, generate returns the stored artifact, and publish returns the
stored post reference once the artifact is published. Stages for the same job
are serialised by a per-job lock; the store's compare-and-swap on
``stage_state`` catches writers in other processes.

A stage interrupted by cancellation or Ctrl-C releases its job before the
interrupt propagates: fetch+transcribe moves it to ``failed``, publish moves it
back to ``completed``. A job whose worker died outright is reclaimed once it
has been in flight longer than the stage deadline.
"""

from __future__ import annotations

import asyncio
import tempfile
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import TypeVar

import structlog

from vidblog.clients.base import BlogGenerator, Publisher, Transcriber, VideoFetcher
from vidblog.errors import (
    ApiError,
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
from vidblog.models import (
    BlogArtifact,
    BlogPost,
    FailureReason,
    Job,
    PublishOutcome,
    PublishResult,
    PublishTarget,
    Transcript,
    WorkflowReport,
)
from vidblog.pipeline.locks import JobLocks
from vidblog.settings import Settings
from vidblog.statuses import ClientErrorKind, PipelineStage, PublishState, StageState
from vidblog.store import JobStore
from vidblog.utils.db import iso_seconds_ago

T = TypeVar("T")

_INTERRUPTS = (asyncio.CancelledError, KeyboardInterrupt)

_IN_FETCH = (StageState.FETCHING, StageState.TRANSCRIBING)

# -- Job state transitions -------------------------------------------------------


def job_fetching(store: JobStore, job_id: str, stale_before: str | None = None) -> Job:
    """PENDING | FAILED → FETCHING (a retry clears the previous failure)

    With ``stale_before``, a FETCHING | TRANSCRIBING job last touched earlier
    than that is taken over too.
    """
    return store.update_job_stage(
        job_id,
        (StageState.PENDING, StageState.FAILED),
        StageState.FETCHING,
        clear_failure=True,
        reclaim=_IN_FETCH,
        reclaim_before=stale_before,
    )


def job_transcribing(store: JobStore, job_id: str) -> Job:
    """FETCHING → TRANSCRIBING"""
    return store.update_job_stage(job_id, StageState.FETCHING, StageState.TRANSCRIBING)


def job_transcribed(store: JobStore, job_id: str, transcript: Transcript) -> Job:
    """TRANSCRIBING → GENERATING"""
    return store.update_job_stage(
        job_id,
        StageState.TRANSCRIBING,
        StageState.GENERATING,
        transcript=transcript.text,
        transcript_language=transcript.language,
        transcript_confidence=transcript.confidence,
        duration_seconds=transcript.duration_seconds,
    )


def job_failed(store: JobStore, job_id: str, from_state: StageState | Iterable[StageState], error: ApiError) -> Job:
    """FETCHING | TRANSCRIBING → FAILED"""
    failure = FailureReason(kind=error.kind, message=error.message, stage=PipelineStage.FETCH_TRANSCRIBE)
    return store.update_job_stage(job_id, from_state, StageState.FAILED, failure=failure)


def job_publishing(store: JobStore, job_id: str, stale_before: str | None = None) -> Job:
    """COMPLETED → PUBLISHING, or a PUBLISHING job last touched before ``stale_before``"""
    return store.update_job_stage(
        job_id,
        StageState.COMPLETED,
        StageState.PUBLISHING,
        publish_requested=True,
        reclaim=StageState.PUBLISHING,
        reclaim_before=stale_before,
    )


def job_publish_failed(store: JobStore, job_id: str, error: ApiError) -> Job:
    """PUBLISHING → COMPLETED, keeping the error as last_error"""
    return store.update_job_stage(
        job_id,
        StageState.PUBLISHING,
        StageState.COMPLETED,
        publish_requested=False,
        last_error_kind=error.kind,
        last_error_message=error.message,
    )


# -- Error reclassification --------------------------------------------------------


def _client_details(exc: BaseException) -> dict:
    if isinstance(exc, StageClientError):
        return {"clientKind": str(exc.kind)}
    return {"exception": type(exc).__name__}


def _message(exc: BaseException) -> str:
    return exc.message if isinstance(exc, StageClientError) else str(exc) or type(exc).__name__


def generation_error(exc: BaseException) -> ApiError:
    if isinstance(exc, StageClientError) and exc.kind == ClientErrorKind.RATE_LIMITED:
        return RateLimitError(exc.message, retry_after=exc.retry_after)
    return GenerationServiceError(_message(exc), _client_details(exc))


def publish_error(exc: BaseException) -> ApiError:
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, StageClientError):
        if exc.kind == ClientErrorKind.AUTH_ERROR:
            return AuthenticationError(exc.message, _client_details(exc))
        if exc.kind == ClientErrorKind.RATE_LIMITED:
            return RateLimitError(exc.message, retry_after=exc.retry_after)
    return PublishServiceError(_message(exc), _client_details(exc))


def check_transcript(transcript: str | None, max_chars: int) -> str:
    if transcript is None or not transcript.strip():
        raise ValidationError("Transcript is required")
    if len(transcript) > max_chars:
        raise ValidationError(
            f"Transcript is too long (maximum {max_chars} characters)",
            {"length": len(transcript), "maxLength": max_chars},
        )
    return transcript


class Orchestrator:
    def __init__(
        self,
        store: JobStore,
        fetcher: VideoFetcher,
        transcriber: Transcriber,
        generator: BlogGenerator,
        publisher: Publisher,
        settings: Settings,
        *,
        locks: JobLocks | None = None,
        log: structlog.stdlib.BoundLogger | None = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.transcriber = transcriber
        self.generator = generator
        self.publisher = publisher
        self.settings = settings
        self.locks = locks or JobLocks()
        self.log = log or structlog.get_logger(__name__)

    async def _bounded(self, call: Awaitable[T], timeout: float, what: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError as exc:
            raise StageClientError(ClientErrorKind.TIMEOUT, f"{what} timed out after {timeout:g}s") from exc

    async def _db(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run a blocking store call in a worker thread."""
        return await asyncio.to_thread(fn, *args, **kwargs)

    def _release_interrupted(self, log, transition: Callable[..., Job], *args) -> None:
        # Synchronous: a second cancellation must not skip the release
        try:
            transition(self.store, *args)
        except StaleStateError:
            log.info("orchestrator.interrupt_already_settled")

    # -- Submit ------------------------------------------------------------------

    async def submit(self, owner_id: str, source_url: str, publish: bool = False) -> Job:
        job = await self._db(self.store.create_job, owner_id, source_url, publish_requested=publish)
        self.log.info("orchestrator.job_submitted", job_id=job.id, owner_id=owner_id, publish=publish)
        return job

    # -- Fetch + transcribe ------------------------------------------------------------

    async def run_fetch_transcribe(self, owner_id: str, job_id: str) -> Transcript:
        await self._db(self.store.get_job, job_id, owner_id)
        async with self.locks.hold(job_id):
            job = await self._db(self.store.get_job, job_id, owner_id)
            log = self.log.bind(job_id=job_id, owner_id=owner_id)

            if job.transcript:
                log.info("orchestrator.transcript_cached")
                return Transcript(
                    text=job.transcript,
                    language=job.transcript_language,
                    confidence=job.transcript_confidence,
                    duration_seconds=job.duration_seconds,
                )
            if not job.source_url:
                raise ValidationError("Job has no source URL to fetch", {"jobId": job_id})

            s = self.settings
            stale_before = iso_seconds_ago(s.video_download_deadline + s.deepgram_timeout + s.stale_stage_grace)
            if job.stage_state in _IN_FETCH and job.updated_at < stale_before:
                log.warning("orchestrator.reclaiming_stage", stage_state=str(job.stage_state), updated_at=job.updated_at)
            await self._db(job_fetching, self.store, job_id, stale_before)
            log.info("orchestrator.fetch_started", source_url=job.source_url)

            try:
                transcript = await self._fetch_and_transcribe(job_id, job.source_url, log)
            except _INTERRUPTS:
                log.warning("orchestrator.fetch_interrupted")
                error = VideoProcessingError("Processing was interrupted before the transcript was stored")
                self._release_interrupted(log, job_failed, job_id, _IN_FETCH, error)
                raise

            await self._db(job_transcribed, self.store, job_id, transcript)
            log.info("orchestrator.transcribe_completed", chars=len(transcript.text))
            return transcript

    async def _fetch_and_transcribe(self, job_id: str, source_url: str, log) -> Transcript:
        temp_root = Path(self.settings.temp_dir)
        temp_root.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=temp_root, prefix=f"job_{job_id[:8]}_") as workdir:
            try:
                audio = await self._bounded(
                    self.fetcher.fetch(
                        source_url,
                        workdir=Path(workdir),
                        max_size_bytes=self.settings.max_video_size_bytes,
                        timeout=self.settings.video_fetch_timeout,
                    ),
                    self.settings.video_download_deadline,
                    "Video download",
                )
            except Exception as exc:
                log.exception("orchestrator.fetch_failed")
                error = VideoProcessingError(_message(exc), _client_details(exc))
                await self._db(job_failed, self.store, job_id, StageState.FETCHING, error)
                raise error from exc

            await self._db(job_transcribing, self.store, job_id)
            log.info("orchestrator.transcribe_started", audio_bytes=audio.size_bytes)
            try:
                transcript = await self._bounded(
                    self.transcriber.transcribe(audio.audio_path, self.settings.deepgram_language),
                    self.settings.deepgram_timeout,
                    "Transcription",
                )
                if not transcript.text.strip():
                    raise StageClientError(ClientErrorKind.BAD_INPUT, "Transcription returned no text")
            except Exception as exc:
                log.exception("orchestrator.transcribe_failed")
                error = TranscriptionServiceError(_message(exc), _client_details(exc))
                await self._db(job_failed, self.store, job_id, StageState.TRANSCRIBING, error)
                raise error from exc
        return transcript

    # -- Generate ------------------------------------------------------------------

    async def run_generate(
        self,
        owner_id: str,
        job_id: str | None = None,
        transcript: str | None = None,
        title_hint: str | None = None,
    ) -> BlogArtifact:
        if job_id is None:
            check_transcript(transcript, self.settings.max_transcript_chars)
            job_id = (await self._db(self.store.create_transcript_job, owner_id, transcript)).id
            self.log.info("orchestrator.transcript_job_created", job_id=job_id, owner_id=owner_id)
        elif transcript is not None:
            raise ValidationError("Provide either a job or an inline transcript, not both")

        await self._db(self.store.get_job, job_id, owner_id)
        async with self.locks.hold(job_id):
            job = await self._db(self.store.get_job, job_id, owner_id)
            log = self.log.bind(job_id=job_id, owner_id=owner_id)

            artifact = await self._db(self.store.get_artifact, job_id)
            if artifact is not None:
                log.info("orchestrator.blog_cached")
                return artifact
            if not job.transcript:
                raise ValidationError(
                    "Job has no transcript yet; run processing first",
                    {"jobId": job_id, "currentState": str(job.stage_state)},
                )
            check_transcript(job.transcript, self.settings.max_transcript_chars)

            log.info("orchestrator.generate_started", transcript_chars=len(job.transcript))
            try:
                blog = await self._bounded(
                    self.generator.generate(job.transcript, title_hint),
                    self.settings.openai_timeout,
                    "Blog generation",
                )
            except Exception as exc:
                log.exception("orchestrator.generate_failed")
                error = generation_error(exc)
                # The job keeps its transcript; callers retry generation against it
                error.details["jobId"] = job_id
                await self._db(self.store.record_last_error, job_id, error.kind, error.message)
                raise error from exc

            artifact = await self._db(self.store.record_blog, job_id, StageState.GENERATING, blog)
            log.info("orchestrator.generate_completed", title=artifact.title, word_count=artifact.word_count)
            return artifact

    # -- Publish ---------------------------------------------------------------------

    async def run_publish(self, owner_id: str, job_id: str, target: PublishTarget | None = None) -> PublishOutcome:
        await self._db(self.store.get_job, job_id, owner_id)
        async with self.locks.hold(job_id):
            job = await self._db(self.store.get_job, job_id, owner_id)
            log = self.log.bind(job_id=job_id, owner_id=owner_id)

            artifact = await self._db(self.store.get_artifact, job_id)
            if artifact is None:
                raise ValidationError("No blog post to publish; run generation first", {"jobId": job_id})
            if artifact.publish_state == PublishState.PUBLISHED:
                log.info("orchestrator.publish_cached", external_post_ref=artifact.external_post_ref)
                return PublishOutcome(
                    job_id=job_id,
                    external_post_ref=artifact.external_post_ref or "",
                    external_post_url=artifact.external_post_url,
                    already_published=True,
                )

            target = target or await self._db(self.store.get_publish_target, owner_id)
            if target is None:
                if job.publish_requested:
                    await self._db(self.store.set_publish_requested, job_id, False)
                raise ValidationError("No publish target configured")

            stale_before = iso_seconds_ago(2 * self.settings.publish_timeout + self.settings.stale_stage_grace)
            if job.stage_state == StageState.PUBLISHING and job.updated_at < stale_before:
                log.warning("orchestrator.reclaiming_stage", stage_state=str(job.stage_state), updated_at=job.updated_at)
            await self._db(job_publishing, self.store, job_id, stale_before)
            log.info("orchestrator.publish_started", site_url=target.site_url)
            try:
                result = await self._publish_post(target, artifact)
            except Exception as exc:
                log.exception("orchestrator.publish_failed")
                error = publish_error(exc)
                await self._db(job_publish_failed, self.store, job_id, error)
                if error is exc:
                    raise
                raise error from exc
            except _INTERRUPTS:
                log.warning("orchestrator.publish_interrupted")
                error = PublishServiceError("Publish was interrupted; the post may need checking on the site")
                self._release_interrupted(log, job_publish_failed, job_id, error)
                raise

            await self._db(self.store.mark_published, job_id, StageState.PUBLISHING, result.external_id, result.url)
            log.info("orchestrator.publish_completed", external_post_ref=result.external_id)
            return PublishOutcome(
                job_id=job_id,
                external_post_ref=result.external_id,
                external_post_url=result.url,
            )

    async def _publish_post(self, target: PublishTarget, artifact: BlogArtifact) -> PublishResult:
        connected = await self._bounded(
            self.publisher.test_connection(target), self.settings.publish_timeout, "Connection test",
        )
        if not connected:
            raise AuthenticationError("Could not authenticate with the publish target")
        return await self._bounded(
            self.publisher.publish(
                target,
                BlogPost(title=artifact.title, content=artifact.content, excerpt=artifact.excerpt),
            ),
            self.settings.publish_timeout,
            "Publish",
        )

    async def save_publish_target(self, owner_id: str, target: PublishTarget) -> None:
        """Verify the credentials against the site, then store them for the owner."""
        try:
            connected = await self._bounded(
                self.publisher.test_connection(target), self.settings.publish_timeout, "Connection test",
            )
        except StageClientError as exc:
            raise PublishServiceError(exc.message, _client_details(exc)) from exc
        if not connected:
            raise AuthenticationError("Could not connect to the publish target with these credentials")
        await self._db(self.store.save_publish_target, owner_id, target)
        self.log.info("orchestrator.publish_target_saved", owner_id=owner_id, site_url=target.site_url)

    # -- Composed workflow ----------------------------------------------------------

    async def run_complete_workflow(
        self,
        owner_id: str,
        source_url: str,
        publish: bool | None = None,
        target: PublishTarget | None = None,
        title_hint: str | None = None,
    ) -> WorkflowReport:
        """Submit, then fetch+transcribe → generate → publish (if requested).

        Stops at the first failing stage; the report names the stage and the
        error. An invalid URL raises before any job exists.
        """
        publish = bool(publish)
        job = await self.submit(owner_id, source_url, publish=publish)
        report = WorkflowReport(job_id=job.id, status=StageState.PENDING)
        log = self.log.bind(job_id=job.id, owner_id=owner_id)

        stage = PipelineStage.FETCH_TRANSCRIBE
        try:
            report.transcript = await self.run_fetch_transcribe(owner_id, job.id)
            stage = PipelineStage.GENERATE
            report.blog = await self.run_generate(owner_id, job.id, title_hint=title_hint)
            if publish:
                stage = PipelineStage.PUBLISH
                report.publish = await self.run_publish(owner_id, job.id, target)
                report.blog = await self._db(self.store.get_artifact, job.id)
        except ApiError as exc:
            log.warning("orchestrator.workflow_failed", stage=str(stage), code=exc.code)
            if publish and stage != PipelineStage.PUBLISH:
                await self._db(self.store.set_publish_requested, job.id, False)
            report.status = StageState.FAILED
            report.failed_stage = stage
            report.error = exc.to_dict()
            return report

        report.status = StageState.COMPLETED
        log.info("orchestrator.workflow_completed", published=report.publish is not None)
        return report
