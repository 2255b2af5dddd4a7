"""Click CLI with commands: init-db, serve, submit, status, watch, publish, jobs."""

from __future__ import annotations

import asyncio

import click

from vidblog.clients import build_clients
from vidblog.db import get_engine
from vidblog.errors import ApiError
from vidblog.models import Job
from vidblog.pipeline.orchestrator import Orchestrator
from vidblog.pipeline.projector import project_step
from vidblog.settings import Settings
from vidblog.statuses import StageState
from vidblog.store import JobStore
from vidblog.utils.logging import setup_logging


@click.group()
@click.option("--owner", default=None, help="Owner identity for local commands (default: VIDBLOG_CLI_OWNER).")
@click.pass_context
def cli(ctx: click.Context, owner: str | None) -> None:
    """vidblog: turn videos into blog posts."""
    ctx.ensure_object(dict)
    settings = Settings()
    ctx.obj["settings"] = settings
    ctx.obj["owner"] = owner or settings.cli_owner
    ctx.obj["engine"] = get_engine(settings.database_url)


def _orchestrator(ctx: click.Context, log_name: str) -> Orchestrator:
    settings = ctx.obj["settings"]
    log = setup_logging(settings.log_dir, log_name)
    clients = build_clients(settings)
    return Orchestrator(
        JobStore(ctx.obj["engine"]),
        clients.fetcher,
        clients.transcriber,
        clients.generator,
        clients.publisher,
        settings,
        log=log,
    )


def _fail(exc: ApiError) -> None:
    click.echo(f"Error [{exc.code}]: {exc.message}", err=True)
    raise SystemExit(1)


def _echo_job(job: Job, store: JobStore) -> None:
    artifact = store.get_artifact(job.id)
    click.echo(f"Job:      {job.id}")
    click.echo(f"Source:   {job.source_url or '(inline transcript)'}")
    click.echo(f"State:    {job.stage_state}  (step: {project_step(job, artifact)})")
    if job.transcript:
        click.echo(f"Transcr:  {len(job.transcript)} chars, language {job.transcript_language or 'unknown'}")
    if artifact:
        click.echo(f"Blog:     {artifact.title} ({artifact.word_count} words, {artifact.publish_state})")
        if artifact.external_post_url:
            click.echo(f"Post:     {artifact.external_post_url}")
    if job.failure_reason:
        click.echo(f"Failure:  {job.failure_reason.kind}: {job.failure_reason.message}")
    if job.last_error:
        click.echo(f"Last err: {job.last_error.kind}: {job.last_error.message}")


@cli.command("init-db")
@click.option("--alembic-ini", default="alembic.ini", show_default=True, help="Path to alembic.ini.")
@click.pass_context
def init_db(ctx: click.Context, alembic_ini: str) -> None:
    """Create or upgrade the database schema (alembic upgrade head)."""
    from alembic import command
    from alembic.config import Config

    cfg = Config(alembic_ini)
    cfg.set_main_option("sqlalchemy.url", ctx.obj["settings"].database_url)
    command.upgrade(cfg, "head")
    click.echo("Database schema is up to date.")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, type=int, show_default=True)
@click.option("--json-logs", is_flag=True, help="Emit JSON logs on stdout.")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, json_logs: bool) -> None:
    """Run the HTTP API."""
    import uvicorn

    from vidblog.api.app import create_app

    settings = ctx.obj["settings"]
    setup_logging(settings.log_dir, "api", json_stdout=json_logs)
    if not settings.token_owners():
        click.echo("Warning: VIDBLOG_API_TOKENS is empty; every request will be rejected.", err=True)
    app = create_app(settings, engine=ctx.obj["engine"])
    uvicorn.run(app, host=host, port=port, log_config=None)


@cli.command()
@click.argument("source_url")
@click.option("--publish", is_flag=True, help="Publish to the saved publish target when done.")
@click.option("--title-hint", default=None, help="Suggested blog title.")
@click.option("--no-run", is_flag=True, help="Only create the job; do not run the pipeline.")
@click.pass_context
def submit(ctx: click.Context, source_url: str, publish: bool, title_hint: str | None, no_run: bool) -> None:
    """Submit a video URL and run the pipeline."""
    orchestrator = _orchestrator(ctx, "submit")
    owner = ctx.obj["owner"]

    try:
        if no_run:
            job = asyncio.run(orchestrator.submit(owner, source_url, publish=publish))
            click.echo(f"Created job {job.id} ({job.stage_state})")
            return
        report = asyncio.run(
            orchestrator.run_complete_workflow(owner, source_url, publish=publish, title_hint=title_hint)
        )
    except ApiError as exc:
        _fail(exc)

    click.echo(f"Job {report.job_id}: {report.status}")
    if report.status == StageState.FAILED:
        error = report.error or {}
        click.echo(f"Failed at {report.failed_stage}: [{error.get('code')}] {error.get('message')}", err=True)
        raise SystemExit(1)
    if report.blog:
        click.echo(f"Blog:  {report.blog.title} ({report.blog.word_count} words)")
    if report.publish:
        click.echo(f"Post:  {report.publish.external_post_url or report.publish.external_post_ref}")


@cli.command()
@click.argument("job_id")
@click.pass_context
def status(ctx: click.Context, job_id: str) -> None:
    """Show a job's state, transcript and blog summary."""
    store = JobStore(ctx.obj["engine"])
    try:
        job = store.get_job(job_id, ctx.obj["owner"])
    except ApiError as exc:
        _fail(exc)
    _echo_job(job, store)


@cli.command()
@click.option("--limit", default=20, type=int, show_default=True)
@click.pass_context
def jobs(ctx: click.Context, limit: int) -> None:
    """List the owner's most recent jobs."""
    store = JobStore(ctx.obj["engine"])
    rows = store.list_jobs(ctx.obj["owner"], limit=limit)
    if not rows:
        click.echo("No jobs yet. Run 'vidblog submit <url>' first.")
        return
    for job in rows:
        step = project_step(job, store.get_artifact(job.id))
        click.echo(f"  {job.id}  {step:<12}  {job.created_at}  {job.source_url or '(inline transcript)'}")


@cli.command()
@click.argument("job_id")
@click.pass_context
def publish(ctx: click.Context, job_id: str) -> None:
    """Publish a generated blog post to the saved publish target."""
    orchestrator = _orchestrator(ctx, "publish")
    try:
        outcome = asyncio.run(orchestrator.run_publish(ctx.obj["owner"], job_id))
    except ApiError as exc:
        _fail(exc)
    prefix = "Already published" if outcome.already_published else "Published"
    click.echo(f"{prefix}: {outcome.external_post_url or outcome.external_post_ref}")


@cli.command()
@click.argument("job_id")
@click.option("--api-url", default="http://127.0.0.1:8000", show_default=True, help="Base URL of a running API.")
@click.option("--token", envvar="VIDBLOG_TOKEN", required=True, help="Bearer token (or VIDBLOG_TOKEN).")
@click.pass_context
def watch(ctx: click.Context, job_id: str, api_url: str, token: str) -> None:
    """Poll a job on a running API until it completes or fails."""
    import httpx

    from vidblog.pipeline.poller import JobStatusPoller, http_status_fetcher

    settings = ctx.obj["settings"]

    def show(status: dict) -> None:
        click.echo(f"  step: {status.get('step')}")

    async def _watch() -> JobStatusPoller:
        headers = {"Authorization": f"Bearer {token}"}
        async with httpx.AsyncClient(base_url=api_url, headers=headers, timeout=10.0) as client:
            poller = JobStatusPoller(
                http_status_fetcher(client, job_id),
                interval=settings.poll_interval,
                max_retries=settings.poll_max_retries,
                on_update=show,
            )
            async with poller:
                await poller.wait()
        return poller

    poller = asyncio.run(_watch())
    if poller.error is not None:
        click.echo(f"Error: {poller.error}", err=True)
        raise SystemExit(1)
    click.echo(f"Final step: {poller.step}")
    if poller.step == "failed":
        raise SystemExit(1)
