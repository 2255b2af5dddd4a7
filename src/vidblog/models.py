"""Pydantic models for validation and serialization."""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, Field

from vidblog.statuses import PipelineStage, PublishState, StageState

_TAG_RE = re.compile(r"<[^>]+>")


def count_words(content: str) -> int:
    """Count words in HTML content, ignoring tags and comment markers."""
    return len(_TAG_RE.sub(" ", content).split())


class FailureReason(BaseModel):
    kind: str
    message: str
    stage: PipelineStage | None = None


class Job(BaseModel):
    id: str
    owner_id: str
    source_url: str | None = None
    stage_state: StageState = StageState.PENDING
    transcript: str | None = None
    transcript_language: str | None = None
    transcript_confidence: float | None = None
    duration_seconds: float | None = None
    failure_reason: FailureReason | None = None
    last_error: FailureReason | None = None
    publish_requested: bool = False
    created_at: str
    updated_at: str


class BlogArtifact(BaseModel):
    id: str
    job_id: str
    title: str
    content: str
    word_count: int
    excerpt: str | None = None
    seo_metadata: dict | None = None
    publish_state: PublishState = PublishState.DRAFT
    external_post_ref: str | None = None
    external_post_url: str | None = None
    created_at: str
    updated_at: str


class PublishTarget(BaseModel):
    site_url: str
    username: str
    app_password: str = Field(repr=False)


# -- Stage client payloads -----------------------------------------------------


class FetchedAudio(BaseModel):
    audio_path: Path
    size_bytes: int | None = None
    source_format: str | None = None


class Transcript(BaseModel):
    text: str
    language: str | None = None
    confidence: float | None = None
    duration_seconds: float | None = None


class GeneratedBlog(BaseModel):
    title: str
    content: str
    word_count: int
    excerpt: str | None = None
    seo_metadata: dict | None = None


class BlogPost(BaseModel):
    """Payload handed to a publisher."""
    title: str
    content: str
    status: str = "publish"
    excerpt: str | None = None


class PublishResult(BaseModel):
    external_id: str
    url: str | None = None


# -- Orchestrator results -------------------------------------------------------


class PublishOutcome(BaseModel):
    job_id: str
    external_post_ref: str
    external_post_url: str | None = None
    already_published: bool = False


class WorkflowReport(BaseModel):
    job_id: str | None = None
    status: StageState
    failed_stage: PipelineStage | None = None
    error: dict | None = None
    transcript: Transcript | None = None
    blog: BlogArtifact | None = None
    publish: PublishOutcome | None = None
