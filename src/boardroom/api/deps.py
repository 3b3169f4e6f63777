"""FastAPI dependencies for board meeting endpoints.

Services are created once in the lifespan handler and parked on
``app.state``; a missing service answers 503 rather than failing deep
inside a request.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.boardroom.api.errors import api_error
from src.boardroom.board.jobs import MeetingJobQueue
from src.boardroom.board.repository import BoardMeetingRepository
from src.boardroom.core.tenant import ANONYMOUS_USER, TENANT_HEADER, USER_HEADER, TenantContext


async def get_tenant(request: Request) -> TenantContext:
    """Tenant and user for the request, read from the tenant headers.

    Raises:
        HTTPException(400): TENANT_REQUIRED when X-Tenant-ID is missing.
    """
    tenant_id = (request.headers.get(TENANT_HEADER) or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=api_error("TENANT_REQUIRED", f"Missing {TENANT_HEADER} header"),
        )
    user_id = (request.headers.get(USER_HEADER) or "").strip() or ANONYMOUS_USER
    return TenantContext(tenant_id=tenant_id, user_id=user_id)


def get_board_repository(request: Request) -> BoardMeetingRepository:
    """Retrieve BoardMeetingRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "board_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Board meeting repository not initialized",
        )
    return repo


def get_job_queue(request: Request) -> MeetingJobQueue:
    """Retrieve MeetingJobQueue from app.state, 503 if not available."""
    queue = getattr(request.app.state, "board_job_queue", None)
    if queue is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Board meeting job queue not initialized",
        )
    return queue
