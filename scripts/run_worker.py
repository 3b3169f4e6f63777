#!/usr/bin/env python3
"""Run the board meeting background worker.

Usage:
    uv run python scripts/run_worker.py
    uv run python scripts/run_worker.py --consumer board-worker-2

Reads DATABASE_URL, REDIS_URL and the LLM provider keys from the
environment or the project's .env file. Stops cleanly on SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys

# Ensure project root is on sys.path so we can import src.boardroom
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def run(consumer_name: str) -> None:
    import structlog

    from src.boardroom.api.middleware.logging import configure_structlog
    from src.boardroom.board.jobs import MeetingJobQueue
    from src.boardroom.board.orchestrator import MeetingOrchestrator
    from src.boardroom.board.repository import BoardMeetingRepository
    from src.boardroom.board.responder import LLMPersonaResponder
    from src.boardroom.board.worker import BoardMeetingWorker
    from src.boardroom.config import get_settings
    from src.boardroom.core.database import close_db, get_session, init_db
    from src.boardroom.core.redis import close_redis, get_redis_pool
    from src.boardroom.services.llm import get_llm_service

    configure_structlog()
    log = structlog.get_logger("scripts.run_worker")
    settings = get_settings()

    await init_db()
    worker = BoardMeetingWorker(
        queue=MeetingJobQueue(get_redis_pool()),
        orchestrator=MeetingOrchestrator(
            repository=BoardMeetingRepository(session_factory=get_session),
            responder=LLMPersonaResponder(get_llm_service()),
        ),
        consumer_name=consumer_name,
        block_ms=settings.WORKER_BLOCK_MS,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.run()
    finally:
        log.info("worker.shutdown")
        await close_db()
        await close_redis()


def main() -> None:
    from src.boardroom.config import get_settings

    parser = argparse.ArgumentParser(description="Run the board meeting worker")
    parser.add_argument(
        "--consumer",
        default=get_settings().WORKER_CONSUMER_NAME,
        help="Consumer name within the worker group",
    )
    args = parser.parse_args()
    asyncio.run(run(args.consumer))


if __name__ == "__main__":
    main()
