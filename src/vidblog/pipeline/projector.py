"""Derive the client-facing processing step from persisted state."""

from __future__ import annotations

from vidblog.models import BlogArtifact, Job
from vidblog.statuses import ProcessingStep, PublishState, StageState

TERMINAL_STEPS = frozenset({ProcessingStep.COMPLETED, ProcessingStep.FAILED})


def project_step(job: Job, artifact: BlogArtifact | None) -> ProcessingStep:
    """Pure and total; the first matching rule wins.

    1. failed job                          -> failed
    2. pending job                         -> fetching
    3. no transcript                       -> transcribing
    4. no artifact                         -> generating
    5. draft artifact, publish requested   -> publishing
    6. otherwise                           -> completed
    """
    if job.stage_state == StageState.FAILED:
        return ProcessingStep.FAILED
    if job.stage_state == StageState.PENDING:
        return ProcessingStep.FETCHING
    if not job.transcript:
        return ProcessingStep.TRANSCRIBING
    if artifact is None:
        return ProcessingStep.GENERATING
    if artifact.publish_state == PublishState.DRAFT and job.publish_requested:
        return ProcessingStep.PUBLISHING
    return ProcessingStep.COMPLETED


def is_terminal(step: ProcessingStep | str) -> bool:
    return step in TERMINAL_STEPS
