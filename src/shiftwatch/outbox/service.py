"""Transactional outbox: write side and the SQL-backed delivery queue.

Producers call ``enqueue`` inside their own transaction, so a message exists if
and only if the change it announces was committed. Delivery happens later in
the worker through ``OutboxQueue``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.db.models import OutboxMessage, User

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class MessageType:
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    BOOKING_CANCELLATION = "BOOKING_CANCELLATION"
    BOOKING_REASSIGNED = "BOOKING_REASSIGNED"
    ADMIN_SHIFT_ASSIGNMENT = "ADMIN_SHIFT_ASSIGNMENT"
    ADMIN_SHIFT_UNASSIGNMENT = "ADMIN_SHIFT_UNASSIGNMENT"
    SHIFT_REMINDER = "SHIFT_REMINDER"
    ACHIEVEMENT_UNLOCKED = "ACHIEVEMENT_UNLOCKED"


def enqueue(
    db: AsyncSession,
    message_type: str,
    recipient: str,
    payload: dict[str, Any],
    *,
    user_id: int | None = None,
    booking_id: int | None = None,
    send_at: datetime | None = None,
) -> OutboxMessage:
    """Stage a message in the current transaction. The caller commits."""
    message = OutboxMessage(
        message_type=message_type,
        recipient=recipient,
        payload=payload,
        user_id=user_id,
        booking_id=booking_id,
        status=STATUS_PENDING,
        send_at=send_at or datetime.now(timezone.utc),
    )
    db.add(message)
    return message


def enqueue_for_user(
    db: AsyncSession,
    user: User,
    message_type: str,
    payload: dict[str, Any],
    *,
    booking_id: int | None = None,
    send_at: datetime | None = None,
) -> OutboxMessage:
    return enqueue(
        db, message_type, user.phone, payload, user_id=user.id, booking_id=booking_id, send_at=send_at
    )


async def withdraw_pending(db: AsyncSession, booking_id: int, message_type: str = MessageType.SHIFT_REMINDER) -> int:
    """Drop undelivered messages of one type for a booking (e.g. reminders of a cancelled shift)."""
    result = await db.execute(
        delete(OutboxMessage).where(
            OutboxMessage.booking_id == booking_id,
            OutboxMessage.message_type == message_type,
            OutboxMessage.status == STATUS_PENDING,
        )
    )
    return result.rowcount


async def withdraw_all_pending(db: AsyncSession, booking_ids: list[int]) -> int:
    """Drop every undelivered message, of any type, for bookings that no longer exist."""
    if not booking_ids:
        return 0
    result = await db.execute(
        delete(OutboxMessage).where(
            OutboxMessage.booking_id.in_(booking_ids),
            OutboxMessage.status == STATUS_PENDING,
        )
    )
    return result.rowcount


async def redirect_pending(
    db: AsyncSession, booking_id: int, user: User, message_type: str = MessageType.SHIFT_REMINDER
) -> int:
    """Point undelivered messages of a booking at a different user."""
    result = await db.execute(
        update(OutboxMessage)
        .where(
            OutboxMessage.booking_id == booking_id,
            OutboxMessage.message_type == message_type,
            OutboxMessage.status == STATUS_PENDING,
        )
        .values(user_id=user.id, recipient=user.phone)
    )
    return result.rowcount


class OutboxQueue:
    """Pending messages as a work queue.

    ``mark_failed`` keeps a message pending with exponential backoff until
    ``max_retries`` attempts have failed, then marks it failed for good. Rows
    are never deleted here.
    """

    def __init__(self, db: AsyncSession, max_retries: int = 3, retry_base_seconds: int = 60) -> None:
        self.db = db
        self.max_retries = max_retries
        self.retry_base_seconds = retry_base_seconds

    async def dequeue(self, batch_size: int, now: datetime | None = None) -> list[OutboxMessage]:
        """Lock and return up to ``batch_size`` due messages, oldest first."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(OutboxMessage)
            .where(OutboxMessage.status == STATUS_PENDING, OutboxMessage.send_at <= now)
            .order_by(OutboxMessage.send_at, OutboxMessage.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    async def mark_sent(self, message: OutboxMessage, now: datetime | None = None) -> None:
        message.status = STATUS_SENT
        message.sent_at = now or datetime.now(timezone.utc)
        message.last_error = None

    async def mark_failed(self, message: OutboxMessage, error: str, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        message.retry_count += 1
        message.last_error = error[:2000]
        if message.retry_count >= self.max_retries:
            message.status = STATUS_FAILED
            logger.error(
                "Outbox message %s (%s) failed permanently after %d attempts: %s",
                message.id, message.message_type, message.retry_count, error,
            )
            return
        delay = self.retry_base_seconds * 2 ** (message.retry_count - 1)
        message.send_at = now + timedelta(seconds=delay)
        logger.warning(
            "Outbox message %s failed (attempt %d/%d), retrying in %ss",
            message.id, message.retry_count, self.max_retries, delay,
        )
