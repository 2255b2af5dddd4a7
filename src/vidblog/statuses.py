"""Status enumerations for the job pipeline."""

from __future__ import annotations

from enum import StrEnum


class StageState(StrEnum):
    """Persisted job lifecycle."""
    PENDING = "pending"
    FETCHING = "fetching"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingStep(StrEnum):
    """Client-facing step derived from persisted state."""
    FETCHING = "fetching"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"


class PublishState(StrEnum):
    """Blog artifact publish lifecycle."""
    DRAFT = "draft"
    PUBLISHED = "published"


class PipelineStage(StrEnum):
    """Independently invocable pipeline stages."""
    FETCH_TRANSCRIBE = "fetch_transcribe"
    GENERATE = "generate"
    PUBLISH = "publish"


class ClientErrorKind(StrEnum):
    """Failure kinds reported by stage clients."""
    INVALID_FORMAT = "invalid_format"
    TOO_LARGE = "too_large"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    AUTH_ERROR = "auth_error"
    RATE_LIMITED = "rate_limited"
    BAD_INPUT = "bad_input"
    QUOTA_EXCEEDED = "quota_exceeded"
    SERVICE_ERROR = "service_error"
