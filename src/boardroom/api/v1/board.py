"""Board meeting endpoints.

POST /board-meeting validates and normalizes the agenda, creates the
meeting record, enqueues the worker job, and answers with a server-sent
event stream that follows the meeting until it completes, fails, or the
client goes away.

GET /board-meeting/{meeting_id} is the out-of-band status query for clients
whose stream ended without a ``completed`` or ``error`` event.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from src.boardroom.api.deps import get_board_repository, get_job_queue, get_tenant
from src.boardroom.api.errors import api_error
from src.boardroom.board.agenda import AgendaValidationError, prepare_agenda
from src.boardroom.board.jobs import MeetingJobQueue, job_id_for
from src.boardroom.board.repository import BoardMeetingRepository
from src.boardroom.board.schemas import BoardMeetingStatusResponse, MeetingStatus
from src.boardroom.board.session import StreamSession
from src.boardroom.board.sync import IncrementalSynchronizer, SyncState
from src.boardroom.board.wire import SSE_HEADERS
from src.boardroom.config import Settings, get_settings
from src.boardroom.core.tenant import TenantContext

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/board-meeting", tags=["board"])


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise AgendaValidationError(
            [{"path": "", "message": "Request body must be valid JSON"}]
        ) from exc


@router.post("")
async def start_board_meeting(
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
    repository: BoardMeetingRepository = Depends(get_board_repository),
    job_queue: MeetingJobQueue = Depends(get_job_queue),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """Start a board meeting and stream its progress as server-sent events.

    Raises:
        AgendaValidationError: Invalid body (rendered as 400 INVALID_AGENDA).
        HTTPException(500): BOARD_MEETING_ERROR if the meeting cannot be
            created or handed to the worker.
    """
    agenda = prepare_agenda(await _read_body(request))

    try:
        meeting = await repository.create_meeting(
            tenant.tenant_id,
            agenda=agenda.display,
            agenda_version=agenda.agenda_version,
            metadata={"status": MeetingStatus.QUEUED.value, "requestedBy": tenant.user_id},
        )
        job = await job_queue.enqueue(
            tenant.tenant_id,
            meeting.id,
            agenda=agenda.sections,
            agenda_version=agenda.agenda_version,
            requested_by=tenant.user_id,
        )
    except Exception:
        logger.error(
            "board.meeting_start_failed",
            tenant_id=tenant.tenant_id,
            user_id=tenant.user_id,
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=api_error("BOARD_MEETING_ERROR", "Failed to start board meeting stream"),
        )

    logger.info(
        "board.meeting_started",
        tenant_id=tenant.tenant_id,
        meeting_id=meeting.id,
        job_id=job.job_id,
        sections=len(agenda.sections),
        agenda_version=agenda.agenda_version,
    )

    synchronizer = IncrementalSynchronizer(
        repository,
        job_queue,
        SyncState(tenant_id=tenant.tenant_id, meeting_id=meeting.id, job=job),
    )
    session = StreamSession(
        synchronizer,
        agenda=agenda.display,
        poll_interval=settings.STREAM_POLL_INTERVAL_SECONDS,
        heartbeat_interval=settings.STREAM_HEARTBEAT_INTERVAL_SECONDS,
        max_duration=settings.STREAM_MAX_DURATION_SECONDS,
        is_disconnected=request.is_disconnected,
    )

    return StreamingResponse(
        session.frames(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/{meeting_id}", response_model=BoardMeetingStatusResponse)
async def get_board_meeting_status(
    meeting_id: str,
    tenant: TenantContext = Depends(get_tenant),
    repository: BoardMeetingRepository = Depends(get_board_repository),
    job_queue: MeetingJobQueue = Depends(get_job_queue),
) -> BoardMeetingStatusResponse:
    """Current state of a meeting, independent of any open stream."""
    meeting = await repository.get_meeting(tenant.tenant_id, meeting_id)
    if meeting is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=api_error("MEETING_NOT_FOUND", f"Board meeting not found: {meeting_id}"),
        )

    job_state = None
    try:
        job_status = await job_queue.get_job_status(job_id_for(tenant.tenant_id, meeting.id))
        job_state = job_status.state if job_status else None
    except Exception:
        logger.warning("board.job_status_lookup_failed", meeting_id=meeting.id, exc_info=True)

    return BoardMeetingStatusResponse(
        meeting_id=meeting.id,
        agenda=meeting.agenda,
        agenda_version=meeting.agenda_version,
        ended=meeting.ended_at is not None,
        ended_at=meeting.ended_at,
        job_state=job_state,
        summary=meeting.metadata.get("summary"),
        outcome_summary=meeting.outcome_summary,
    )
