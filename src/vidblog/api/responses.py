"""Response envelope and payload shapes for the HTTP API."""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from vidblog.api.ratelimit import retry_after_header
from vidblog.db import now_iso
from vidblog.errors import ApiError, RateLimitError
from vidblog.models import BlogArtifact, FailureReason, Job, PublishOutcome, WorkflowReport
from vidblog.pipeline.projector import project_step


def ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data, "timestamp": now_iso()}


def error_body(error: dict[str, Any]) -> dict[str, Any]:
    return {"success": False, "error": error, "timestamp": now_iso()}


def error_response(exc: ApiError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers["Retry-After"] = retry_after_header(exc.retry_after)
    return JSONResponse(error_body(exc.to_dict()), status_code=exc.status_code, headers=headers)


def _failure(reason: FailureReason) -> dict[str, Any]:
    data: dict[str, Any] = {"kind": reason.kind, "message": reason.message}
    if reason.stage:
        data["stage"] = str(reason.stage)
    return data


def blog_payload(artifact: BlogArtifact) -> dict[str, Any]:
    return {
        "id": artifact.id,
        "title": artifact.title,
        "content": artifact.content,
        "excerpt": artifact.excerpt,
        "wordCount": artifact.word_count,
        "seoMetadata": artifact.seo_metadata,
        "publishState": str(artifact.publish_state),
        "externalPostRef": artifact.external_post_ref,
        "externalPostUrl": artifact.external_post_url,
        "updatedAt": artifact.updated_at,
    }


def job_payload(job: Job, artifact: BlogArtifact | None, *, detail: bool = True) -> dict[str, Any]:
    data: dict[str, Any] = {
        "jobId": job.id,
        "status": str(job.stage_state),
        "step": str(project_step(job, artifact)),
        "sourceUrl": job.source_url,
        "publishRequested": job.publish_requested,
        "createdAt": job.created_at,
        "updatedAt": job.updated_at,
    }
    if detail and job.transcript:
        data["transcript"] = {
            "text": job.transcript,
            "language": job.transcript_language,
            "confidence": job.transcript_confidence,
            "durationSeconds": job.duration_seconds,
        }
    if artifact is not None:
        data["blog"] = blog_payload(artifact) if detail else {
            "title": artifact.title,
            "publishState": str(artifact.publish_state),
        }
    if job.failure_reason:
        data["failureReason"] = _failure(job.failure_reason)
    if job.last_error:
        data["lastError"] = _failure(job.last_error)
    return data


def publish_payload(outcome: PublishOutcome) -> dict[str, Any]:
    return {
        "jobId": outcome.job_id,
        "externalPostRef": outcome.external_post_ref,
        "externalPostUrl": outcome.external_post_url,
        "alreadyPublished": outcome.already_published,
    }


def workflow_payload(report: WorkflowReport) -> dict[str, Any]:
    data: dict[str, Any] = {"jobId": report.job_id, "status": str(report.status)}
    if report.transcript is not None:
        data["transcript"] = {
            "text": report.transcript.text,
            "language": report.transcript.language,
            "confidence": report.transcript.confidence,
            "durationSeconds": report.transcript.duration_seconds,
        }
    if report.blog is not None:
        data["blog"] = blog_payload(report.blog)
    if report.publish is not None:
        data["publish"] = publish_payload(report.publish)
    return data
