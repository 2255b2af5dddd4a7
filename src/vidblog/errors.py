"""Error taxonomy shared by the store, the orchestrator and the HTTP API.

Every error carries a stable ``code`` so a client can tell "retry the same
stage", "fix credentials", "fix input" and "wait and retry" apart without
parsing message text.
"""

from __future__ import annotations

from typing import Any

from vidblog.statuses import ClientErrorKind, PipelineStage


class ApiError(Exception):
    """Base for every error that maps onto an HTTP error response."""

    code = "API_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def kind(self) -> str:
        """Name persisted as ``failure_kind`` / ``last_error_kind``."""
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "statusCode": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(ApiError):
    code = "AUTH_ERROR"
    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: dict[str, Any] | None = None):
        super().__init__(message, details)


class NotFoundError(ApiError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} with identifier '{identifier}' not found" if identifier else f"{resource} not found"
        super().__init__(message)


class RateLimitError(ApiError):
    code = "RATE_LIMIT_ERROR"
    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", retry_after: float | None = None):
        self.retry_after = retry_after
        details = {"retryAfter": retry_after} if retry_after is not None else None
        super().__init__(message, details)


class StaleStateError(ApiError):
    """A stage transition found the job in a different state than it expected."""

    code = "STALE_STATE"
    status_code = 409


class ExternalServiceError(ApiError):
    """A remote collaborator failed. Transient: the caller may retry the stage."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502
    stage: PipelineStage | None = None

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        details = dict(details or {})
        if self.stage is not None:
            details.setdefault("stage", str(self.stage))
        super().__init__(message, details)


class VideoProcessingError(ExternalServiceError):
    code = "VIDEO_PROCESSING_ERROR"
    stage = PipelineStage.FETCH_TRANSCRIBE


class TranscriptionServiceError(ExternalServiceError):
    code = "TRANSCRIPTION_SERVICE_ERROR"
    stage = PipelineStage.FETCH_TRANSCRIBE


class GenerationServiceError(ExternalServiceError):
    code = "GENERATION_SERVICE_ERROR"
    stage = PipelineStage.GENERATE


class PublishServiceError(ExternalServiceError):
    code = "PUBLISH_SERVICE_ERROR"
    stage = PipelineStage.PUBLISH


class StageClientError(Exception):
    """Raised by a stage client; reclassified by the orchestrator."""

    def __init__(self, kind: ClientErrorKind, message: str, retry_after: float | None = None):
        self.kind = kind
        self.message = message
        self.retry_after = retry_after
        super().__init__(f"[{kind}] {message}")
