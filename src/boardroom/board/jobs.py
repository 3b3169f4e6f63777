"""Board meeting job queue on Redis Streams.

Jobs are appended to a single stream consumed by a worker consumer group;
each job also has a status hash the stream session polls to detect worker
failure.

Key patterns:
- job stream:  events:board-meeting
- dead letters: events:board-meeting:dlq
- job status:  jobs:board-meeting:{job_id}

The job id ``board-meeting-{tenant_id}-{meeting_id}`` makes enqueue
idempotent per meeting: a second enqueue of the same meeting is a no-op.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis
import structlog

from src.boardroom.board.schemas import (
    AgendaSection,
    BoardMeetingJob,
    JobHandle,
    JobState,
    JobStatus,
)

logger = structlog.get_logger(__name__)

JOB_STREAM = "events:board-meeting"
CONSUMER_GROUP = "board-meeting-workers"
JOB_STATUS_TTL_SECONDS = 7 * 24 * 3600


class JobQueueError(RuntimeError):
    """Raised when a job cannot be handed to the queue."""


def job_id_for(tenant_id: str, meeting_id: str) -> str:
    return f"board-meeting-{tenant_id}-{meeting_id}"


def job_status_key(job_id: str) -> str:
    return f"jobs:board-meeting:{job_id}"


class MeetingJobQueue:
    """Producer, status tracker and consumer-group reader for board meeting jobs.

    Args:
        redis: Raw async Redis client (decode_responses=True).
        stream: Job stream key.
    """

    def __init__(self, redis: aioredis.Redis, stream: str = JOB_STREAM) -> None:
        self._redis = redis
        self._stream = stream
        self._dlq_stream = f"{stream}:dlq"

    @property
    def stream(self) -> str:
        return self._stream

    # ── Producer ─────────────────────────────────────────────────────────

    async def enqueue(
        self,
        tenant_id: str,
        meeting_id: str,
        agenda: list[AgendaSection],
        agenda_version: int,
        requested_by: str,
    ) -> JobHandle:
        """Hand a meeting to the background worker.

        Args:
            tenant_id: Tenant that owns the meeting.
            meeting_id: Meeting record id.
            agenda: Normalized agenda sections, in order.
            agenda_version: Client agenda version.
            requested_by: User id that started the meeting.

        Returns:
            JobHandle for status polling.

        Raises:
            JobQueueError: If Redis rejects the write.
        """
        job_id = job_id_for(tenant_id, meeting_id)
        job = BoardMeetingJob(
            tenant_id=tenant_id,
            meeting_id=meeting_id,
            user_id=requested_by,
            agenda=agenda,
            agenda_version=agenda_version,
        )
        enqueued_at = datetime.now(timezone.utc)
        status_key = job_status_key(job_id)

        try:
            created = await self._redis.hsetnx(status_key, "state", JobState.QUEUED.value)
            if not created:
                logger.info("board.job_already_enqueued", job_id=job_id)
                return JobHandle(job_id=job_id, queue=self._stream, enqueued_at=enqueued_at)

            await self._redis.hset(
                status_key,
                mapping={
                    "tenant_id": tenant_id,
                    "meeting_id": meeting_id,
                    "enqueued_at": enqueued_at.isoformat(),
                },
            )
            await self._redis.expire(status_key, JOB_STATUS_TTL_SECONDS)
            message_id = await self._redis.xadd(
                self._stream,
                {"job_id": job_id, "payload": job.model_dump_json(by_alias=True)},
                maxlen=10000,
                approximate=True,
            )
        except aioredis.RedisError as exc:
            raise JobQueueError(f"Failed to enqueue board meeting job {job_id}") from exc

        logger.info(
            "board.job_enqueued",
            job_id=job_id,
            tenant_id=tenant_id,
            meeting_id=meeting_id,
            message_id=message_id,
            sections=len(agenda),
        )
        return JobHandle(job_id=job_id, queue=self._stream, enqueued_at=enqueued_at)

    # ── Status ───────────────────────────────────────────────────────────

    async def get_job_status(self, handle: JobHandle | str) -> JobStatus | None:
        """Current job state, or None if the job is unknown."""
        job_id = handle.job_id if isinstance(handle, JobHandle) else handle
        data = await self._redis.hgetall(job_status_key(job_id))
        if not data or "state" not in data:
            return None
        return JobStatus(state=JobState(data["state"]), reason=data.get("reason") or None)

    async def _set_state(self, job_id: str, state: JobState, **fields: str) -> None:
        await self._redis.hset(
            job_status_key(job_id),
            mapping={
                "state": state.value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
                **fields,
            },
        )

    async def mark_running(self, job_id: str) -> None:
        await self._set_state(job_id, JobState.RUNNING)

    async def mark_completed(self, job_id: str) -> None:
        await self._set_state(job_id, JobState.COMPLETED)

    async def mark_failed(self, job_id: str, reason: str) -> None:
        await self._set_state(job_id, JobState.FAILED, reason=reason)

    # ── Consumer ─────────────────────────────────────────────────────────

    async def ensure_group(self, group: str = CONSUMER_GROUP) -> None:
        """Create the worker consumer group (idempotent)."""
        try:
            await self._redis.xgroup_create(self._stream, group, id="0", mkstream=True)
        except aioredis.ResponseError:
            pass  # Group already exists

    async def read(
        self,
        consumer: str,
        group: str = CONSUMER_GROUP,
        count: int = 1,
        block: int = 5000,
    ) -> list[tuple[str, dict[str, str]]]:
        """Read new job messages as ``(message_id, data)`` pairs."""
        response = await self._redis.xreadgroup(
            groupname=group,
            consumername=consumer,
            streams={self._stream: ">"},
            count=count,
            block=block,
        )
        messages: list[tuple[str, dict[str, str]]] = []
        for _stream_key, entries in response or []:
            messages.extend(entries)
        return messages

    async def ack(self, message_id: str, group: str = CONSUMER_GROUP) -> None:
        await self._redis.xack(self._stream, group, message_id)

    async def send_to_dlq(self, message_id: str, data: dict[str, Any], error: str) -> str:
        """Copy a failed job message to the dead letter stream."""
        dlq_data: dict[str, str] = {
            **{k: str(v) for k, v in data.items()},
            "_dlq_original_stream": self._stream,
            "_dlq_original_id": message_id,
            "_dlq_error": error,
            "_dlq_timestamp": datetime.now(timezone.utc).isoformat(),
        }
        dlq_message_id = await self._redis.xadd(self._dlq_stream, dlq_data)
        logger.warning(
            "board.job_dead_lettered",
            dlq_key=self._dlq_stream,
            original_id=message_id,
            error=error,
        )
        return dlq_message_id


def parse_job(data: dict[str, str]) -> BoardMeetingJob:
    """Decode a job message read from the stream.

    Raises:
        pydantic.ValidationError: If the payload is malformed.
    """
    return BoardMeetingJob.model_validate_json(data["payload"])
