"""Live event stream for one board meeting.

StreamSession owns everything one client connection needs: the delivery
state, the poll task driving the synchronizer, the heartbeat task, an
optional lifetime deadline, and the outbound frame queue. Producers (poll
ticks, heartbeats) push encoded frames onto an asyncio.Queue; the HTTP
layer drains it through ``frames()``.

States: starting -> streaming -> completed | errored | client_closed.

All termination paths go through ``close()``. It is synchronous, so the
check-and-set of the closed flag cannot interleave with another coroutine,
and only the first call has any effect.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum

import structlog

from src.boardroom.board.sync import IncrementalSynchronizer, TerminationKind
from src.boardroom.board.wire import HEARTBEAT_FRAME, StreamEvent, error_event
from src.boardroom.core.monitoring import (
    board_stream_events_total,
    board_stream_sessions_active,
    board_stream_sessions_closed_total,
    board_stream_ticks_dropped_total,
)

logger = structlog.get_logger(__name__)

SYNC_FAILURE_MESSAGE = "Meeting state could not be synchronized"
MAX_DURATION_MESSAGE = "Meeting stream exceeded maximum duration"

_END_OF_STREAM = object()


class SessionState(str, Enum):
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    CLIENT_CLOSED = "client_closed"


class CloseReason(str, Enum):
    COMPLETED = "completed"
    ERRORED = "errored"
    CLIENT_CLOSED = "client_closed"


_TERMINAL_STATES = {
    CloseReason.COMPLETED: SessionState.COMPLETED,
    CloseReason.ERRORED: SessionState.ERRORED,
    CloseReason.CLIENT_CLOSED: SessionState.CLIENT_CLOSED,
}


class StreamSession:
    """One open board meeting event stream.

    Args:
        synchronizer: Synchronizer bound to this session's delivery state.
        agenda: Display agenda for the initial snapshot.
        poll_interval: Seconds between poll ticks.
        heartbeat_interval: Seconds between heartbeat frames.
        max_duration: Session lifetime cap in seconds; 0 disables it.
        is_disconnected: Optional disconnect check, e.g. ``Request.is_disconnected``.
            Checked before every tick and on every heartbeat.
    """

    def __init__(
        self,
        synchronizer: IncrementalSynchronizer,
        agenda: list,
        poll_interval: float = 1.5,
        heartbeat_interval: float = 15.0,
        max_duration: float = 0.0,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        self._sync = synchronizer
        self._agenda = agenda
        self._poll_interval = poll_interval
        self._heartbeat_interval = heartbeat_interval
        self._max_duration = max_duration
        self._is_disconnected = is_disconnected

        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed_event = asyncio.Event()
        self._closed = False
        self._started = False
        self.state = SessionState.STARTING
        self.close_reason: CloseReason | None = None

        self._poll_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._deadline_task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None

    @property
    def meeting_id(self) -> str:
        return self._sync.state.meeting_id

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Startup ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Arm the heartbeat, emit the agenda snapshot and schedule polling."""
        if self._started or self._closed:
            return
        self._started = True
        board_stream_sessions_active.inc()

        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        for event in self._sync.snapshot(self._agenda):
            self._emit(event)

        if self._max_duration > 0:
            self._deadline_task = asyncio.create_task(self._deadline())

        self._poll_task = asyncio.create_task(self._poll_loop())
        self.state = SessionState.STREAMING
        logger.info(
            "board.stream_started",
            meeting_id=self.meeting_id,
            sections=len(self._agenda),
            poll_interval=self._poll_interval,
        )

    # ── Producers ────────────────────────────────────────────────────────

    def _emit(self, event: StreamEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event.encode())
        board_stream_events_total.labels(event_type=event.type.value).inc()

    async def _poll_loop(self) -> None:
        while not self._closed:
            self.trigger_tick()
            await asyncio.sleep(self._poll_interval)

    def trigger_tick(self) -> bool:
        """Start a tick unless one is still running. Returns False if dropped."""
        if self._closed:
            return False
        if self._tick_task is not None and not self._tick_task.done():
            board_stream_ticks_dropped_total.inc()
            logger.debug("board.stream_tick_dropped", meeting_id=self.meeting_id)
            return False
        self._tick_task = asyncio.create_task(self._run_tick())
        return True

    async def _run_tick(self) -> None:
        if self._is_disconnected is not None and await self._is_disconnected():
            self._client_gone()
            return
        try:
            result = await self._sync.tick()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error(
                "board.stream_sync_failed",
                meeting_id=self.meeting_id,
                exc_info=True,
            )
            self._emit(error_event(self.meeting_id, SYNC_FAILURE_MESSAGE))
            self.close(CloseReason.ERRORED)
            return

        for event in result.events:
            self._emit(event)

        termination = result.termination
        if termination is not None:
            self._emit(termination.event)
            if termination.kind == TerminationKind.COMPLETED:
                self.close(CloseReason.COMPLETED)
            else:
                self.close(CloseReason.ERRORED)

    async def _heartbeat_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self._heartbeat_interval)
            if self._closed:
                return
            if self._is_disconnected is not None and await self._is_disconnected():
                self._client_gone()
                return
            self._queue.put_nowait(HEARTBEAT_FRAME)

    def _client_gone(self) -> None:
        logger.info("board.stream_client_disconnected", meeting_id=self.meeting_id)
        self.close(CloseReason.CLIENT_CLOSED)

    async def _deadline(self) -> None:
        await asyncio.sleep(self._max_duration)
        logger.warning(
            "board.stream_max_duration_reached",
            meeting_id=self.meeting_id,
            max_duration=self._max_duration,
        )
        self._emit(error_event(self.meeting_id, MAX_DURATION_MESSAGE))
        self.close(CloseReason.ERRORED)

    # ── Lifecycle ────────────────────────────────────────────────────────

    def close(self, reason: CloseReason) -> bool:
        """Terminate the session. Only the first call does anything.

        Cancels the poll, heartbeat, deadline and in-flight tick tasks (but
        never the task that is calling close), ends the frame stream, and
        records the terminal state.

        Returns:
            True if this call closed the session, False if it was already closed.
        """
        if self._closed:
            return False
        self._closed = True

        current = asyncio.current_task()
        for task in (self._poll_task, self._heartbeat_task, self._deadline_task, self._tick_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

        self._queue.put_nowait(_END_OF_STREAM)
        self.state = _TERMINAL_STATES[reason]
        self.close_reason = reason
        self._closed_event.set()

        board_stream_sessions_closed_total.labels(reason=reason.value).inc()
        if self._started:
            board_stream_sessions_active.dec()

        log = logger.info if reason != CloseReason.ERRORED else logger.warning
        log(
            "board.stream_closed",
            meeting_id=self.meeting_id,
            reason=reason.value,
            cursor=self._sync.state.cursor,
            action_items=len(self._sync.state.emitted_action_items),
        )
        return True

    async def wait_closed(self) -> None:
        await self._closed_event.wait()

    # ── Consumer ─────────────────────────────────────────────────────────

    async def frames(self) -> AsyncIterator[str]:
        """Yield encoded SSE frames until the session ends.

        Starts the session on first iteration. If the consumer stops early
        (client gone, response cancelled) the session is closed as
        client_closed.
        """
        self.start()
        try:
            while True:
                frame = await self._queue.get()
                if frame is _END_OF_STREAM:
                    return
                yield frame
        finally:
            self.close(CloseReason.CLIENT_CLOSED)
