"""Shift report intake.

Report content belongs to the incident-reporting collaborator; this service
only records the row that completes a booking and fires the completion event.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.bookings.service import get_booking, is_completed
from shiftwatch.db.models import Report, Schedule, User
from shiftwatch.errors import Forbidden, SeverityOutOfRange
from shiftwatch.gamification.engine import EngineResult, GamificationEngine

logger = logging.getLogger(__name__)

MIN_SEVERITY = 0
MAX_SEVERITY = 2


async def file_report(
    db: AsyncSession,
    booking_id: int,
    actor: User,
    severity: int,
    message: str = "",
    now: datetime | None = None,
) -> tuple[Report, EngineResult]:
    """Attach a report to a booking.

    The first report completes the booking and is scored; later reports on the
    same booking are stored but earn nothing.
    """
    if not MIN_SEVERITY <= severity <= MAX_SEVERITY:
        msg = f"severity must be between {MIN_SEVERITY} and {MAX_SEVERITY}"
        raise SeverityOutOfRange(msg)

    booking = await get_booking(db, booking_id, for_update=True)
    if booking.user_id != actor.id and not actor.is_admin:
        msg = "you can only report on your own shifts"
        raise Forbidden(msg)

    already_completed = await is_completed(db, booking.id)
    report = Report(
        booking_id=booking.id,
        user_id=booking.user_id,
        severity=severity,
        message=message,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(report)
    await db.flush()

    result = EngineResult()
    if not already_completed:
        schedule = await db.get(Schedule, booking.schedule_id)
        result = await GamificationEngine(db).on_completed(booking, schedule, report)
    await db.commit()

    logger.info("Report %s filed for booking %s (severity %d)", report.id, booking.id, severity)
    return report, result
