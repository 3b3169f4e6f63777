"""Background worker consuming board meeting jobs from the Redis job stream.

Each job runs once: the worker marks it running, hands it to the
MeetingOrchestrator, and marks it completed. A failing job is marked
failed with its reason (which open streams relay to the client as an
``error`` event) and copied to the dead letter stream. Meetings are never
retried automatically. Every message is acknowledged.
"""

from __future__ import annotations

import asyncio

import structlog
from pydantic import ValidationError

from src.boardroom.board.jobs import CONSUMER_GROUP, MeetingJobQueue, parse_job
from src.boardroom.board.orchestrator import MeetingOrchestrator
from src.boardroom.core.monitoring import board_jobs_processed_total

logger = structlog.get_logger(__name__)


class BoardMeetingWorker:
    """Consumer-group loop that runs board meeting jobs.

    Args:
        queue: Job queue to consume from.
        orchestrator: Orchestrator that runs a single job.
        consumer_name: Unique consumer identifier within the group.
        group: Consumer group name.
        block_ms: Milliseconds to block waiting for new jobs.
    """

    def __init__(
        self,
        queue: MeetingJobQueue,
        orchestrator: MeetingOrchestrator,
        consumer_name: str,
        group: str = CONSUMER_GROUP,
        block_ms: int = 5000,
    ) -> None:
        self._queue = queue
        self._orchestrator = orchestrator
        self._consumer_name = consumer_name
        self._group = group
        self._block_ms = block_ms
        self._running = False

    async def run(self) -> None:
        """Read and process jobs until stop() is called or the task is cancelled."""
        await self._queue.ensure_group(self._group)
        self._running = True
        logger.info(
            "board.worker_started",
            stream=self._queue.stream,
            group=self._group,
            consumer=self._consumer_name,
        )

        while self._running:
            try:
                messages = await self._queue.read(
                    self._consumer_name, group=self._group, block=self._block_ms
                )
            except asyncio.CancelledError:
                logger.info("board.worker_cancelled")
                raise
            except Exception:
                logger.error("board.worker_read_error", exc_info=True)
                await asyncio.sleep(1)
                continue

            for message_id, data in messages:
                try:
                    await self.process_message(message_id, data)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.error("board.worker_process_error", message_id=message_id, exc_info=True)

        logger.info("board.worker_stopped", consumer=self._consumer_name)

    async def process_message(self, message_id: str, data: dict[str, str]) -> bool:
        """Run one job message. Returns True if the meeting finished."""
        job_id = data.get("job_id", message_id)
        try:
            job = parse_job(data)
        except (KeyError, ValidationError) as exc:
            logger.error("board.job_malformed", message_id=message_id, job_id=job_id, error=str(exc))
            await self._record_failure(
                logger, message_id, data, job_id, "Malformed board meeting job", f"malformed job: {exc}"
            )
            await self._queue.ack(message_id, group=self._group)
            board_jobs_processed_total.labels(status="malformed").inc()
            return False

        log = logger.bind(job_id=job_id, tenant_id=job.tenant_id, meeting_id=job.meeting_id)
        try:
            await self._queue.mark_running(job_id)
            result = await self._orchestrator.run(job)
            await self._queue.mark_completed(job_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            log.error("board.job_failed", error=reason, exc_info=True)
            await self._record_failure(log, message_id, data, job_id, reason)
            board_jobs_processed_total.labels(status="failed").inc()
            return False
        finally:
            await self._queue.ack(message_id, group=self._group)

        board_jobs_processed_total.labels(status="completed").inc()
        log.info(
            "board.job_completed",
            persona_count=result.persona_count,
            action_items=result.action_item_count,
        )
        return True

    async def _record_failure(
        self,
        log,
        message_id: str,
        data: dict[str, str],
        job_id: str,
        reason: str,
        dlq_reason: str | None = None,
    ) -> None:
        """Mark the job failed and dead-letter it; each step is attempted independently."""
        try:
            await self._queue.mark_failed(job_id, reason)
        except Exception:
            log.error("board.job_mark_failed_error", job_id=job_id, exc_info=True)
        try:
            await self._queue.send_to_dlq(message_id, data, dlq_reason or reason)
        except Exception:
            log.error("board.job_dlq_error", message_id=message_id, exc_info=True)

    def stop(self) -> None:
        """Signal the processing loop to stop after the current iteration."""
        self._running = False
