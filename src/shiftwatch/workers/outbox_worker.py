"""arq worker for outbox delivery and ledger reconciliation.

Usage: arq shiftwatch.workers.settings.WorkerSettings
"""

from __future__ import annotations

import logging
from datetime import timedelta

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings

from shiftwatch.config import get_settings
from shiftwatch.database import close_db, get_session_factory, init_db
from shiftwatch.gamification.ledger import reconcile_game_states
from shiftwatch.outbox.dispatcher import OutboxDispatcher
from shiftwatch.outbox.sender import RedisPubSubSender
from shiftwatch.recurring.service import materialize_upcoming_bookings

logger = logging.getLogger(__name__)


async def outbox_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB + Redis connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    ctx["redis_client"] = redis_client
    ctx["dispatcher"] = OutboxDispatcher(get_session_factory(), RedisPubSubSender(redis_client), settings)
    logger.info("Outbox worker started")


async def outbox_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis_client")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Outbox worker shut down")


async def dispatch_outbox(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: deliver everything that is due."""
    dispatcher: OutboxDispatcher = ctx["dispatcher"]
    result = await dispatcher.drain()
    return result.sent


async def nightly_reconcile(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: compare game-state projections with the ledger (03:30 UTC)."""
    async with get_session_factory()() as db:
        return await reconcile_game_states(db, lookback=timedelta(days=2))


async def materialize_recurring(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: book upcoming slots held by recurring assignments (hourly)."""
    async with get_session_factory()() as db:
        result = await materialize_upcoming_bookings(db)
    return result.created


class OutboxWorkerSettings:
    """arq worker settings for outbox delivery."""

    functions = [dispatch_outbox, nightly_reconcile, materialize_recurring]
    cron_jobs = [
        cron(dispatch_outbox, second={0, 15, 30, 45}, unique=True),
        cron(nightly_reconcile, hour={3}, minute={30}, unique=True),
        cron(materialize_recurring, minute={5}, unique=True),
    ]
    on_startup = outbox_startup
    on_shutdown = outbox_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 4
    job_timeout = 300
