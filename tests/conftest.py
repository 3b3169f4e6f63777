"""Shared fixtures for board meeting tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.boardroom.config import Settings, get_settings
from tests.doubles import InMemoryBoardRepository, InMemoryJobQueue


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def repository() -> InMemoryBoardRepository:
    return InMemoryBoardRepository()


@pytest.fixture
def job_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with stream intervals short enough for tests."""
    return Settings(
        STREAM_POLL_INTERVAL_SECONDS=0.01,
        STREAM_HEARTBEAT_INTERVAL_SECONDS=0.05,
        STREAM_MAX_DURATION_SECONDS=0,
    )


@pytest_asyncio.fixture
async def api(repository, job_queue, fast_settings) -> AsyncGenerator[tuple[AsyncClient, Any], None]:
    """AsyncClient over the real app with in-memory services on app.state."""
    from src.boardroom.main import create_app

    app = create_app()
    app.state.board_repository = repository
    app.state.board_job_queue = job_queue
    app.dependency_overrides[get_settings] = lambda: fast_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, app
