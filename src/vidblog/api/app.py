"""FastAPI application factory."""

from __future__ import annotations

import time
import uuid

import sqlalchemy as sa
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from vidblog.api.auth import IdentityResolver, StaticTokenResolver
from vidblog.api.ratelimit import InMemoryRateLimiter, RateLimiter
from vidblog.api.responses import error_body, error_response
from vidblog.api.routes import ROUTERS
from vidblog.clients import StageClients, build_clients
from vidblog.db import get_engine
from vidblog.errors import ApiError, ValidationError
from vidblog.pipeline.orchestrator import Orchestrator
from vidblog.settings import Settings
from vidblog.store import JobStore
from vidblog.utils.logging import bind_request_context

logger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    engine: sa.engine.Engine | None = None,
    clients: StageClients | None = None,
    rate_limiter: RateLimiter | None = None,
    identity: IdentityResolver | None = None,
) -> FastAPI:
    """Wire store, orchestrator, rate limiter and identity into a FastAPI app.

    Anything not passed in is built from ``settings``.
    """
    settings = settings or Settings()
    engine = engine or get_engine(settings.database_url)
    clients = clients or build_clients(settings)
    store = JobStore(engine)

    app = FastAPI(title="vidblog", version="0.1.0")
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = Orchestrator(
        store, clients.fetcher, clients.transcriber, clients.generator, clients.publisher, settings,
    )
    app.state.rate_limiter = rate_limiter or InMemoryRateLimiter(
        settings.rate_limit_requests, settings.rate_limit_window_seconds,
    )
    app.state.identity = identity or StaticTokenResolver(settings.token_owners())

    for router in ROUTERS:
        app.include_router(router)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        bind_request_context(request_id=request_id)
        started = time.monotonic()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log("http.api_error", path=request.url.path, code=exc.code, message=exc.message)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        logger.warning("http.invalid_request", path=request.url.path, errors=errors)
        return error_response(ValidationError("Invalid request body", {"errors": errors}))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("http.unhandled_error", path=request.url.path)
        body = error_body({"code": "INTERNAL_ERROR", "message": "An unexpected error occurred", "statusCode": 500})
        return JSONResponse(body, status_code=500)

    return app
