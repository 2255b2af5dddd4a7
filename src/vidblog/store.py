"""Job Store: persistence for jobs, blog artifacts and publish targets.

Every stage transition is a compare-and-swap on ``stage_state``: the caller
names the state(s) it expects the job to be in, and the UPDATE only matches
when that still holds. A miss raises StaleStateError instead of overwriting
a concurrent writer's result.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterable

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from vidblog.db import BlogArtifactRow, JobRow, PublishTargetRow, now_iso
from vidblog.errors import NotFoundError, StaleStateError, ValidationError
from vidblog.models import BlogArtifact, FailureReason, GeneratedBlog, Job, PublishTarget, count_words
from vidblog.statuses import PipelineStage, PublishState, StageState
from vidblog.utils.urls import validate_video_url

# Columns a stage transition may patch alongside stage_state
_PATCHABLE = frozenset(
    {
        "transcript",
        "transcript_language",
        "transcript_confidence",
        "duration_seconds",
        "publish_requested",
        "last_error_kind",
        "last_error_message",
    }
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _as_states(expected: StageState | Iterable[StageState]) -> list[str]:
    if isinstance(expected, StageState):
        return [str(expected)]
    return [str(s) for s in expected]


def _row_to_job(row) -> Job:
    failure = None
    if row.failure_kind:
        failure = FailureReason(
            kind=row.failure_kind,
            message=row.failure_message or "",
            stage=PipelineStage(row.failure_stage) if row.failure_stage else None,
        )
    last_error = None
    if row.last_error_kind:
        last_error = FailureReason(kind=row.last_error_kind, message=row.last_error_message or "")
    return Job(
        id=row.id,
        owner_id=row.owner_id,
        source_url=row.source_url,
        stage_state=StageState(row.stage_state),
        transcript=row.transcript,
        transcript_language=row.transcript_language,
        transcript_confidence=row.transcript_confidence,
        duration_seconds=row.duration_seconds,
        failure_reason=failure,
        last_error=last_error,
        publish_requested=bool(row.publish_requested),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_artifact(row) -> BlogArtifact:
    return BlogArtifact(
        id=row.id,
        job_id=row.job_id,
        title=row.title,
        content=row.content,
        word_count=row.word_count,
        excerpt=row.excerpt,
        seo_metadata=json.loads(row.seo_metadata) if row.seo_metadata else None,
        publish_state=PublishState(row.publish_state),
        external_post_ref=row.external_post_ref,
        external_post_url=row.external_post_url,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class JobStore:
    """SQLAlchemy-backed store. Reads are owner-scoped; writes are keyed by job id."""

    def __init__(self, engine: sa.engine.Engine):
        self.engine = engine

    # -- Jobs ----------------------------------------------------------------

    def create_job(self, owner_id: str, source_url: str, *, publish_requested: bool = False) -> Job:
        """Create a job in ``pending``. Invalid URLs raise before anything is written."""
        validate_video_url(source_url)
        return self._insert_job(owner_id, source_url=source_url, stage_state=StageState.PENDING,
                                publish_requested=publish_requested)

    def create_transcript_job(self, owner_id: str, transcript: str) -> Job:
        """Create a job that starts from an inline transcript, ready for generation."""
        return self._insert_job(owner_id, source_url=None, stage_state=StageState.GENERATING, transcript=transcript)

    def _insert_job(self, owner_id: str, **values) -> Job:
        if not owner_id:
            raise ValidationError("Owner identity is required")
        job_id = _new_id()
        now = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                sa.insert(JobRow).values(id=job_id, owner_id=owner_id, created_at=now, updated_at=now, **values)
            )
            row = conn.execute(sa.select(JobRow).where(JobRow.id == job_id)).one()
        return _row_to_job(row)

    def get_job(self, job_id: str, owner_id: str) -> Job:
        """Return the job, or raise NotFoundError if it is missing or owned by someone else."""
        with self.engine.connect() as conn:
            row = conn.execute(
                sa.select(JobRow).where(JobRow.id == job_id, JobRow.owner_id == owner_id)
            ).first()
        if row is None:
            raise NotFoundError("Job", job_id)
        return _row_to_job(row)

    def list_jobs(self, owner_id: str, limit: int = 20) -> list[Job]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                sa.select(JobRow)
                .where(JobRow.owner_id == owner_id)
                .order_by(JobRow.created_at.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_job(r) for r in rows]

    def update_job_stage(
        self,
        job_id: str,
        expected: StageState | Iterable[StageState],
        new_state: StageState,
        *,
        failure: FailureReason | None = None,
        clear_failure: bool = False,
        reclaim: StageState | Iterable[StageState] = (),
        reclaim_before: str | None = None,
        **fields,
    ) -> Job:
        """Move a job from one of ``expected`` to ``new_state`` in one transaction.

        A job in one of the ``reclaim`` states also matches when its
        ``updated_at`` is older than ``reclaim_before``: the worker that put
        it there died without releasing it.
        """
        unknown = set(fields) - _PATCHABLE
        if unknown:
            raise ValueError(f"Cannot patch job columns: {sorted(unknown)}")

        values = dict(fields, stage_state=str(new_state), updated_at=now_iso())
        if failure is not None:
            values.update(
                failure_kind=failure.kind,
                failure_message=failure.message,
                failure_stage=str(failure.stage) if failure.stage else None,
            )
        elif clear_failure:
            values.update(failure_kind=None, failure_message=None, failure_stage=None)

        with self.engine.begin() as conn:
            self._cas(
                conn, job_id, expected, values,
                write_once_transcript="transcript" in fields, reclaim=reclaim, reclaim_before=reclaim_before,
            )
            row = conn.execute(sa.select(JobRow).where(JobRow.id == job_id)).one()
        return _row_to_job(row)

    def _cas(
        self,
        conn: sa.Connection,
        job_id: str,
        expected,
        values: dict,
        *,
        write_once_transcript: bool = False,
        reclaim=(),
        reclaim_before: str | None = None,
    ) -> None:
        matches = JobRow.stage_state.in_(_as_states(expected))
        if reclaim_before is not None:
            matches = sa.or_(
                matches,
                sa.and_(JobRow.stage_state.in_(_as_states(reclaim)), JobRow.updated_at < reclaim_before),
            )
        stmt = sa.update(JobRow).where(JobRow.id == job_id, matches)
        if write_once_transcript:
            stmt = stmt.where(JobRow.transcript.is_(None))
        result = conn.execute(stmt.values(**values))
        if result.rowcount == 1:
            return
        current = conn.execute(sa.select(JobRow.stage_state).where(JobRow.id == job_id)).scalar()
        if current is None:
            raise NotFoundError("Job", job_id)
        raise StaleStateError(
            f"Job {job_id} is in state '{current}', expected one of {_as_states(expected)}",
            {"jobId": job_id, "currentState": current, "expected": _as_states(expected)},
        )

    def record_last_error(self, job_id: str, kind: str, message: str) -> None:
        """Remember a recoverable stage error without touching stage_state."""
        with self.engine.begin() as conn:
            conn.execute(
                sa.update(JobRow)
                .where(JobRow.id == job_id)
                .values(last_error_kind=kind, last_error_message=message, updated_at=now_iso())
            )

    def set_publish_requested(self, job_id: str, requested: bool) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                sa.update(JobRow)
                .where(JobRow.id == job_id)
                .values(publish_requested=requested, updated_at=now_iso())
            )

    # -- Blog artifacts --------------------------------------------------------

    def get_artifact(self, job_id: str) -> BlogArtifact | None:
        with self.engine.connect() as conn:
            row = conn.execute(sa.select(BlogArtifactRow).where(BlogArtifactRow.job_id == job_id)).first()
        return _row_to_artifact(row) if row else None

    def record_blog(self, job_id: str, expected: StageState | Iterable[StageState], blog: GeneratedBlog) -> BlogArtifact:
        """Insert the artifact and advance the job to ``completed`` atomically."""
        now = now_iso()
        try:
            with self.engine.begin() as conn:
                self._cas(
                    conn, job_id, expected,
                    {"stage_state": str(StageState.COMPLETED), "updated_at": now,
                     "last_error_kind": None, "last_error_message": None},
                )
                conn.execute(
                    sa.insert(BlogArtifactRow).values(
                        id=_new_id(),
                        job_id=job_id,
                        title=blog.title,
                        content=blog.content,
                        word_count=count_words(blog.content),
                        excerpt=blog.excerpt,
                        seo_metadata=json.dumps(blog.seo_metadata) if blog.seo_metadata else None,
                        publish_state=str(PublishState.DRAFT),
                        created_at=now,
                        updated_at=now,
                    )
                )
                row = conn.execute(sa.select(BlogArtifactRow).where(BlogArtifactRow.job_id == job_id)).one()
        except IntegrityError as exc:
            raise StaleStateError(f"Blog artifact for job {job_id} already exists", {"jobId": job_id}) from exc
        return _row_to_artifact(row)

    def update_artifact_content(
        self, job_id: str, owner_id: str, *, title: str | None = None, content: str | None = None,
    ) -> BlogArtifact:
        """Edit a draft artifact; word_count follows content."""
        self.get_job(job_id, owner_id)
        values: dict = {"updated_at": now_iso()}
        if title is not None:
            values["title"] = title
        if content is not None:
            values["content"] = content
            values["word_count"] = count_words(content)
        with self.engine.begin() as conn:
            result = conn.execute(
                sa.update(BlogArtifactRow)
                .where(BlogArtifactRow.job_id == job_id, BlogArtifactRow.publish_state == str(PublishState.DRAFT))
                .values(**values)
            )
            row = conn.execute(sa.select(BlogArtifactRow).where(BlogArtifactRow.job_id == job_id)).first()
        if row is None:
            raise NotFoundError("BlogArtifact", job_id)
        if result.rowcount == 0:
            raise ValidationError("Published blog posts cannot be edited", {"jobId": job_id})
        return _row_to_artifact(row)

    def mark_published(
        self,
        job_id: str,
        expected: StageState | Iterable[StageState],
        external_ref: str,
        url: str | None = None,
    ) -> BlogArtifact:
        """draft → published, and the job back to ``completed``, in one transaction."""
        now = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                sa.update(BlogArtifactRow)
                .where(BlogArtifactRow.job_id == job_id, BlogArtifactRow.publish_state == str(PublishState.DRAFT))
                .values(
                    publish_state=str(PublishState.PUBLISHED),
                    external_post_ref=external_ref,
                    external_post_url=url,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                raise StaleStateError(f"Blog artifact for job {job_id} is not a draft", {"jobId": job_id})
            self._cas(
                conn, job_id, expected,
                {"stage_state": str(StageState.COMPLETED), "publish_requested": False, "updated_at": now,
                 "last_error_kind": None, "last_error_message": None},
            )
            row = conn.execute(sa.select(BlogArtifactRow).where(BlogArtifactRow.job_id == job_id)).one()
        return _row_to_artifact(row)

    # -- Publish targets ---------------------------------------------------------

    def get_publish_target(self, owner_id: str) -> PublishTarget | None:
        with self.engine.connect() as conn:
            row = conn.execute(sa.select(PublishTargetRow).where(PublishTargetRow.owner_id == owner_id)).first()
        if row is None:
            return None
        return PublishTarget(site_url=row.site_url, username=row.username, app_password=row.app_password)

    def save_publish_target(self, owner_id: str, target: PublishTarget) -> None:
        """Insert or replace the owner's single publish target."""
        now = now_iso()
        with self.engine.begin() as conn:
            existing = conn.execute(
                sa.select(PublishTargetRow.id).where(PublishTargetRow.owner_id == owner_id)
            ).first()
            values = {"site_url": target.site_url, "username": target.username,
                      "app_password": target.app_password, "updated_at": now}
            if existing:
                conn.execute(sa.update(PublishTargetRow).where(PublishTargetRow.id == existing[0]).values(**values))
            else:
                conn.execute(sa.insert(PublishTargetRow).values(owner_id=owner_id, created_at=now, **values))
