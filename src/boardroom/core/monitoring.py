"""Prometheus metrics, Sentry integration, and persona call tracking.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Board stream counters and gauges updated by StreamSession
- track_llm_call(): Context manager for persona LLM call metrics
- init_sentry(): Initialize Sentry with tenant-aware before_send callback
- get_metrics_response(): Response for the /metrics route
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.boardroom.core.tenant import get_current_tenant

logger = structlog.get_logger(__name__)

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code", "tenant_id"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "tenant_id"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Board Stream Metrics ─────────────────────────────────────────────────────

board_stream_sessions_active = Gauge(
    "board_stream_sessions_active",
    "Board meeting event streams currently open",
)

board_stream_events_total = Counter(
    "board_stream_events_total",
    "Board meeting stream events emitted",
    ["event_type"],
)

board_stream_sessions_closed_total = Counter(
    "board_stream_sessions_closed_total",
    "Board meeting event streams closed, by terminal reason",
    ["reason"],
)

board_stream_ticks_dropped_total = Counter(
    "board_stream_ticks_dropped_total",
    "Poll ticks skipped because the previous tick was still running",
)

# ── Worker Metrics ───────────────────────────────────────────────────────────

board_jobs_processed_total = Counter(
    "board_jobs_processed_total",
    "Board meeting jobs processed by the worker",
    ["status"],
)

llm_requests_total = Counter(
    "llm_requests_total",
    "Total LLM API requests",
    ["model", "persona_id", "status"],
)

llm_request_duration_seconds = Histogram(
    "llm_request_duration_seconds",
    "LLM API request duration in seconds",
    ["model", "persona_id"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        tenant_id = request.headers.get("X-Tenant-ID") or "unknown"
        endpoint = request.url.path

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
            tenant_id=tenant_id,
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
            tenant_id=tenant_id,
        ).observe(duration)

        return response


# ── LLM Metrics Helper ──────────────────────────────────────────────────────


@asynccontextmanager
async def track_llm_call(
    model: str,
    persona_id: str,
) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that tracks persona LLM call metrics.

    Usage:
        async with track_llm_call("reasoning", "cfo") as tracker:
            content = await generate(...)
            tracker["tokens"] = estimate_tokens(content)

    Records duration and success/error counts. The tracker dict gets
    ``latency_ms`` filled in on exit so callers can reuse it.
    """
    tracker: dict[str, Any] = {"tokens": 0, "latency_ms": 0}
    start_time = time.perf_counter()
    status = "success"

    try:
        yield tracker
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        tracker["latency_ms"] = int(duration * 1000)

        llm_requests_total.labels(model=model, persona_id=persona_id, status=status).inc()
        llm_request_duration_seconds.labels(model=model, persona_id=persona_id).observe(duration)


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK with tenant-aware event tagging.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Add tenant and user context to Sentry events."""
        try:
            ctx = get_current_tenant()
        except RuntimeError:
            return event
        event.setdefault("tags", {})
        event["tags"]["tenant_id"] = ctx.tenant_id
        event["tags"]["user_id"] = ctx.user_id
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )
    logger.info("sentry.initialized", environment=environment)


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
