"""HTTP routes. Every route except /health runs as an authenticated owner."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from vidblog.api.auth import get_owner_id
from vidblog.api.ratelimit import retry_after_header
from vidblog.api.responses import blog_payload, error_body, job_payload, ok, publish_payload, workflow_payload
from vidblog.api.schemas import (
    CreateJobIn,
    EditBlogIn,
    GenerateIn,
    InlineGenerateIn,
    PublishIn,
    PublishTargetIn,
    WorkflowIn,
)
from vidblog.errors import NotFoundError, RateLimitError, ValidationError
from vidblog.pipeline.orchestrator import Orchestrator
from vidblog.statuses import StageState
from vidblog.store import JobStore


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def job_detail(store: JobStore, job_id: str, owner_id: str) -> dict[str, Any]:
    job = store.get_job(job_id, owner_id)
    return job_payload(job, store.get_artifact(job_id))


def enforce_rate_limit(request: Request, response: Response, owner_id: str = Depends(get_owner_id)) -> str:
    """Charge one request to the caller; 429 once the window budget is spent."""
    limiter = request.app.state.rate_limiter
    allowed = limiter.allow(owner_id)
    status = limiter.status(owner_id)
    if not allowed:
        raise RateLimitError("Too many requests, please try again later", retry_after=status.reset_in)
    response.headers["X-RateLimit-Limit"] = str(status.limit)
    response.headers["X-RateLimit-Remaining"] = str(status.remaining)
    response.headers["X-RateLimit-Reset"] = retry_after_header(status.reset_in)
    return owner_id


health_router = APIRouter(tags=["health"])
jobs_router = APIRouter(prefix="/jobs", tags=["jobs"])
blog_router = APIRouter(prefix="/blog", tags=["blog"])
workflow_router = APIRouter(prefix="/workflow", tags=["workflow"])
target_router = APIRouter(prefix="/publish-target", tags=["publish-target"])


@health_router.get("/health")
def health() -> dict[str, Any]:
    return ok({"status": "ok"})


# -- Jobs ----------------------------------------------------------------------


@jobs_router.post("", status_code=201)
async def create_job(
    payload: CreateJobIn,
    owner_id: str = Depends(enforce_rate_limit),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    job = await orchestrator.submit(owner_id, payload.source_url, publish=payload.publish)
    return ok(job_payload(job, None, detail=False))


@jobs_router.get("")
def list_jobs(
    limit: int = Query(default=20, ge=1, le=100),
    owner_id: str = Depends(get_owner_id),
    store: JobStore = Depends(get_store),
):
    jobs = store.list_jobs(owner_id, limit=limit)
    return ok([job_payload(job, store.get_artifact(job.id), detail=False) for job in jobs])


@jobs_router.get("/{job_id}")
def get_job(job_id: str, owner_id: str = Depends(get_owner_id), store: JobStore = Depends(get_store)):
    return ok(job_detail(store, job_id, owner_id))


@jobs_router.post("/{job_id}/process")
async def process_job(
    job_id: str,
    owner_id: str = Depends(enforce_rate_limit),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    await orchestrator.run_fetch_transcribe(owner_id, job_id)
    return ok(await asyncio.to_thread(job_detail, orchestrator.store, job_id, owner_id))


@jobs_router.post("/{job_id}/generate")
async def generate_blog(
    job_id: str,
    payload: GenerateIn | None = None,
    owner_id: str = Depends(enforce_rate_limit),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    title_hint = payload.title_hint if payload else None
    artifact = await orchestrator.run_generate(owner_id, job_id, title_hint=title_hint)
    return ok({"jobId": job_id, "blog": blog_payload(artifact)})


@jobs_router.patch("/{job_id}/blog")
def edit_blog(
    job_id: str,
    payload: EditBlogIn,
    owner_id: str = Depends(enforce_rate_limit),
    store: JobStore = Depends(get_store),
):
    if payload.title is None and payload.content is None:
        raise ValidationError("Nothing to update; provide title or content")
    artifact = store.update_artifact_content(job_id, owner_id, title=payload.title, content=payload.content)
    return ok({"jobId": job_id, "blog": blog_payload(artifact)})


@jobs_router.post("/{job_id}/publish")
async def publish_blog(
    job_id: str,
    payload: PublishIn | None = None,
    owner_id: str = Depends(enforce_rate_limit),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    target = payload.target.to_target() if payload and payload.target else None
    outcome = await orchestrator.run_publish(owner_id, job_id, target)
    return ok(publish_payload(outcome))


# -- Inline generation ----------------------------------------------------------


@blog_router.post("/generate", status_code=201)
async def generate_from_transcript(
    payload: InlineGenerateIn,
    owner_id: str = Depends(enforce_rate_limit),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    artifact = await orchestrator.run_generate(owner_id, transcript=payload.transcript, title_hint=payload.title_hint)
    return ok({"jobId": artifact.job_id, "blog": blog_payload(artifact)})


# -- Composed workflow ------------------------------------------------------------


@workflow_router.post("")
async def run_workflow(
    payload: WorkflowIn,
    owner_id: str = Depends(enforce_rate_limit),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    report = await orchestrator.run_complete_workflow(
        owner_id,
        payload.source_url,
        publish=payload.publish,
        target=payload.target.to_target() if payload.target else None,
        title_hint=payload.title_hint,
    )
    if report.status == StageState.FAILED:
        error = dict(report.error or {})
        error["details"] = {**error.get("details", {}), "jobId": report.job_id, "failedStage": str(report.failed_stage)}
        return JSONResponse(error_body(error), status_code=error.get("statusCode", 502))
    return ok(workflow_payload(report))


# -- Publish target -----------------------------------------------------------------


@target_router.get("")
def get_publish_target(owner_id: str = Depends(get_owner_id), store: JobStore = Depends(get_store)):
    target = store.get_publish_target(owner_id)
    if target is None:
        raise NotFoundError("PublishTarget")
    return ok({"siteUrl": target.site_url, "username": target.username, "configured": True})


@target_router.put("")
async def save_publish_target(
    payload: PublishTargetIn,
    owner_id: str = Depends(enforce_rate_limit),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    target = payload.to_target()
    await orchestrator.save_publish_target(owner_id, target)
    return ok({"siteUrl": target.site_url, "username": target.username, "configured": True})


ROUTERS = (health_router, jobs_router, blog_router, workflow_router, target_router)
