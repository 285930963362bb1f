"""Drain the outbox through a MessageSender."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shiftwatch.config import Settings, get_settings
from shiftwatch.outbox.sender import MessageSender
from shiftwatch.outbox.service import OutboxQueue

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    sent: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.failed


class OutboxDispatcher:
    """Deliver due outbox messages in batches.

    Each batch runs in its own transaction: the rows are locked while being
    sent, and their new status is committed together at the end of the batch.
    Delivery is at-least-once; a crash after sending but before commit resends.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sender: MessageSender,
        settings: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.sender = sender
        self.settings = settings or get_settings()

    async def process_batch(self, now: datetime | None = None) -> BatchResult:
        now = now or datetime.now(timezone.utc)
        result = BatchResult()
        async with self.session_factory() as db:
            queue = OutboxQueue(db, self.settings.outbox_max_retries, self.settings.outbox_retry_base_seconds)
            for message in await queue.dequeue(self.settings.outbox_batch_size, now):
                try:
                    await self.sender.send(message)
                except Exception as exc:  # noqa: BLE001
                    await queue.mark_failed(message, f"{type(exc).__name__}: {exc}", now)
                    result.failed += 1
                else:
                    await queue.mark_sent(message, now)
                    result.sent += 1
            await db.commit()

        if result.processed:
            logger.info("Outbox batch: %d sent, %d failed", result.sent, result.failed)
        return result

    async def drain(self, max_batches: int = 100) -> BatchResult:
        """Process batches until the queue has nothing due (or ``max_batches`` is hit)."""
        total = BatchResult()
        for _ in range(max_batches):
            batch = await self.process_batch()
            total.sent += batch.sent
            total.failed += batch.failed
            if batch.processed < self.settings.outbox_batch_size:
                break
        return total

    async def run(self, stop: asyncio.Event) -> None:
        """Poll until ``stop`` is set."""
        while not stop.is_set():
            try:
                await self.drain()
            except Exception:
                logger.exception("Outbox dispatch failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.settings.outbox_poll_interval_seconds)
            except asyncio.TimeoutError:
                pass
