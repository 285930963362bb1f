"""Schedule administration."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from types import SimpleNamespace
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.config import get_settings
from shiftwatch.db.models import Booking, Schedule, User
from shiftwatch.errors import InvalidSchedule, NotFound, ScheduleInUse
from shiftwatch.outbox.service import MessageType, enqueue_for_user, withdraw_all_pending
from shiftwatch.scheduling.cron import parse_cron
from shiftwatch.scheduling.expander import find_slot, load_zone

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "cron_expr", "timezone", "duration_minutes", "start_date", "end_date")
# An explicit null on these leaves the stored value alone; the date bounds may be cleared.
REQUIRED_FIELDS = frozenset({"name", "cron_expr", "timezone", "duration_minutes"})


def validate_definition(
    cron_expr: str,
    tz_name: str,
    duration_minutes: int,
    start_date: date | None,
    end_date: date | None,
) -> None:
    """Raise the matching domain error if any part of a schedule definition is invalid."""
    parse_cron(cron_expr)
    load_zone(tz_name)
    if duration_minutes <= 0:
        msg = "duration_minutes must be positive"
        raise InvalidSchedule(msg)
    if start_date and end_date and end_date < start_date:
        msg = "end_date is before start_date"
        raise InvalidSchedule(msg)


async def get_schedule(db: AsyncSession, schedule_id: int) -> Schedule:
    schedule = await db.get(Schedule, schedule_id)
    if schedule is None:
        msg = f"schedule {schedule_id} not found"
        raise NotFound(msg)
    return schedule


async def list_schedules(db: AsyncSession) -> list[Schedule]:
    result = await db.execute(select(Schedule).order_by(Schedule.id))
    return list(result.scalars().all())


async def create_schedule(
    db: AsyncSession,
    *,
    name: str,
    cron_expr: str,
    timezone: str = "UTC",
    duration_minutes: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Schedule:
    """Validate and persist a new schedule."""
    if duration_minutes is None:
        duration_minutes = get_settings().default_shift_duration_minutes
    validate_definition(cron_expr, timezone, duration_minutes, start_date, end_date)

    schedule = Schedule(
        name=name,
        cron_expr=cron_expr.strip(),
        timezone=timezone,
        duration_minutes=duration_minutes,
        start_date=start_date,
        end_date=end_date,
    )
    db.add(schedule)
    await db.commit()
    await db.refresh(schedule)
    logger.info("Created schedule %s (%r, %s)", schedule.id, schedule.cron_expr, schedule.timezone)
    return schedule


async def update_schedule(
    db: AsyncSession,
    schedule_id: int,
    changes: dict[str, Any],
    now: datetime | None = None,
) -> Schedule:
    """Apply an edit, refusing it when an upcoming booking would no longer match a slot.

    Past bookings are history and are not re-validated.
    """
    schedule = await get_schedule(db, schedule_id)
    now = now or datetime.now(timezone.utc)

    values = {field: getattr(schedule, field) for field in EDITABLE_FIELDS}
    values.update(
        {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and not (v is None and k in REQUIRED_FIELDS)}
    )
    validate_definition(
        values["cron_expr"], values["timezone"], values["duration_minutes"], values["start_date"], values["end_date"]
    )

    candidate = SimpleNamespace(id=schedule.id, **values)
    upcoming = await db.execute(
        select(Booking).where(Booking.schedule_id == schedule.id, Booking.shift_start >= now)
    )
    for booking in upcoming.scalars():
        slot = find_slot(candidate, booking.shift_start)
        if slot is None or slot.end_time != booking.shift_end:
            msg = f"schedule {schedule.id} has an upcoming booking at {booking.shift_start.isoformat()}"
            raise ScheduleInUse(msg)

    for field, value in values.items():
        setattr(schedule, field, value)
    await db.commit()
    await db.refresh(schedule)
    logger.info("Updated schedule %s", schedule.id)
    return schedule


async def _release_bookings(db: AsyncSession, schedule_ids: list[int], now: datetime) -> int:
    """Withdraw undelivered messages of the schedules' bookings and tell upcoming holders.

    Runs before the cascade removes the bookings. Returns the number of upcoming
    bookings released.
    """
    rows = (
        await db.execute(
            select(Booking, User, Schedule.name)
            .join(User, User.id == Booking.user_id)
            .join(Schedule, Schedule.id == Booking.schedule_id)
            .where(Booking.schedule_id.in_(schedule_ids))
        )
    ).all()
    await withdraw_all_pending(db, [booking.id for booking, _, _ in rows])

    released = 0
    for booking, user, schedule_name in rows:
        if booking.shift_start <= now:
            continue
        enqueue_for_user(
            db,
            user,
            MessageType.BOOKING_CANCELLATION,
            {
                "booking_id": booking.id,
                "schedule_id": booking.schedule_id,
                "schedule_name": schedule_name,
                "shift_start": booking.shift_start.isoformat(),
                "shift_end": booking.shift_end.isoformat(),
                "reason": "schedule_deleted",
            },
            booking_id=booking.id,
        )
        released += 1
    return released


async def delete_schedule(db: AsyncSession, schedule_id: int, now: datetime | None = None) -> None:
    """Delete a schedule; its bookings go with it (ON DELETE CASCADE)."""
    await get_schedule(db, schedule_id)
    released = await _release_bookings(db, [schedule_id], now or datetime.now(timezone.utc))
    await db.execute(delete(Schedule).where(Schedule.id == schedule_id))
    await db.commit()
    logger.info("Deleted schedule %s, released %d upcoming bookings", schedule_id, released)


async def bulk_delete_schedules(db: AsyncSession, schedule_ids: list[int], now: datetime | None = None) -> int:
    """Delete several schedules at once. Unknown ids are ignored; returns the number removed."""
    if not schedule_ids:
        return 0
    await _release_bookings(db, schedule_ids, now or datetime.now(timezone.utc))
    result = await db.execute(delete(Schedule).where(Schedule.id.in_(schedule_ids)))
    await db.commit()
    logger.info("Bulk deleted %d schedules", result.rowcount)
    return result.rowcount
