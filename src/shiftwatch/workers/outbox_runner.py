"""Standalone runner for the outbox dispatcher.

Polls the outbox table and publishes due messages to Redis without arq.

Usage: python -m shiftwatch.workers.outbox_runner
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal

from shiftwatch.config import get_settings
from shiftwatch.database import close_db, get_session_factory, init_db
from shiftwatch.outbox.dispatcher import OutboxDispatcher
from shiftwatch.outbox.sender import LogSender, RedisPubSubSender
from shiftwatch.redis_client import close_redis, get_redis, init_redis

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def main() -> None:
    """Run the dispatcher until SIGINT/SIGTERM."""
    settings = get_settings()
    log_only = os.environ.get("SW_OUTBOX_LOG_ONLY", "") == "1"
    await init_db(settings.database_url)
    await init_redis(settings.redis_url, max_connections=10)

    sender = LogSender() if log_only else RedisPubSubSender(get_redis())
    dispatcher = OutboxDispatcher(get_session_factory(), sender, settings)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info(
        "Starting outbox dispatcher (batch=%d, poll=%ss)",
        settings.outbox_batch_size, settings.outbox_poll_interval_seconds,
    )
    try:
        await dispatcher.run(stop)
    finally:
        await close_redis()
        await close_db()
        logger.info("Outbox dispatcher stopped")


if __name__ == "__main__":
    asyncio.run(main())
