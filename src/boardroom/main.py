"""FastAPI application factory.

Creates the app with tenant, logging and metrics middleware, CORS, JSON
error handlers, Sentry, lifespan events that build the board meeting
services, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.boardroom.api.errors import install_error_handlers
from src.boardroom.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.boardroom.api.v1.router import router as v1_router
from src.boardroom.config import get_settings
from src.boardroom.core.database import close_db, get_session, init_db
from src.boardroom.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.boardroom.core.redis import close_redis, get_redis_pool
from src.boardroom.core.tenant import TenantHeaderMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build board meeting services on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # Services init independently; endpoints answer 503 for whatever is missing.
    try:
        await init_db()
        from src.boardroom.board.repository import BoardMeetingRepository

        app.state.board_repository = BoardMeetingRepository(session_factory=get_session)
        log.info("board.repository_initialized")
    except Exception:
        log.warning("board.repository_init_failed", exc_info=True)
        app.state.board_repository = None

    try:
        from src.boardroom.board.jobs import MeetingJobQueue

        redis = get_redis_pool()
        await redis.ping()
        app.state.board_job_queue = MeetingJobQueue(redis)
        log.info("board.job_queue_initialized")
    except Exception:
        log.warning("board.job_queue_init_failed", exc_info=True)
        app.state.board_job_queue = None

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Boardroom API",
        version="0.1.0",
        description="Live board meeting orchestration with server-sent event streaming",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # Tenant middleware (inner -- sets tenant context from headers)
    app.add_middleware(TenantHeaderMiddleware)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    install_error_handlers(app)
    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
