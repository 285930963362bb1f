"""Merge expanded slots with persisted bookings.

``annotate`` is a pure hash join keyed by (schedule_id, start_time). The async
helpers below load schedules and bookings for a window and feed them through it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.config import get_settings
from shiftwatch.db.models import Booking, Schedule, User
from shiftwatch.errors import InvalidCronExpression, InvalidTimezone, NotFound
from shiftwatch.scheduling.expander import ShiftSlot, expand
from shiftwatch.time_utils import as_utc

logger = logging.getLogger(__name__)


class BookingLike(Protocol):
    id: int
    user_id: int
    schedule_id: int
    shift_start: datetime
    buddy_name: str | None


@dataclass(frozen=True)
class AnnotatedSlot:
    slot: ShiftSlot
    booking: BookingLike | None = None
    schedule_name: str | None = None
    timezone: str | None = None
    user_name: str | None = None

    @property
    def is_booked(self) -> bool:
        return self.booking is not None


def annotate(slots: Iterable[ShiftSlot], bookings: Iterable[BookingLike]) -> list[AnnotatedSlot]:
    """Attach the matching booking (if any) to every slot, preserving slot order."""
    by_key = {(b.schedule_id, as_utc(b.shift_start)): b for b in bookings}
    return [AnnotatedSlot(slot=slot, booking=by_key.get(slot.key)) for slot in slots]


async def _bookings_in_window(
    db: AsyncSession,
    schedule_ids: Sequence[int],
    window_start: datetime,
    window_end: datetime,
) -> list[tuple[Booking, str]]:
    if not schedule_ids:
        return []
    result = await db.execute(
        select(Booking, User.name)
        .join(User, User.id == Booking.user_id)
        .where(
            Booking.schedule_id.in_(schedule_ids),
            Booking.shift_start >= window_start,
            Booking.shift_start < window_end,
        )
    )
    return [(booking, name) for booking, name in result.all()]


async def _annotated_window(
    db: AsyncSession,
    schedules: Sequence[Schedule],
    window_start: datetime,
    window_end: datetime,
    *,
    skip_invalid: bool,
) -> list[AnnotatedSlot]:
    by_id: dict[int, Schedule] = {}
    slots: list[ShiftSlot] = []
    for schedule in schedules:
        try:
            slots.extend(expand(schedule, window_start, window_end))
            by_id[schedule.id] = schedule
        except (InvalidCronExpression, InvalidTimezone):
            if not skip_invalid:
                raise
            logger.warning("Skipping schedule %s with invalid definition", schedule.id, exc_info=True)

    rows = await _bookings_in_window(db, list(by_id), window_start, window_end)
    names = {booking.id: name for booking, name in rows}

    merged: list[AnnotatedSlot] = []
    for item in annotate(slots, [booking for booking, _ in rows]):
        schedule = by_id[item.slot.schedule_id]
        merged.append(
            AnnotatedSlot(
                slot=item.slot,
                booking=item.booking,
                schedule_name=schedule.name,
                timezone=schedule.timezone,
                user_name=names.get(item.booking.id) if item.booking else None,
            )
        )
    merged.sort(key=lambda a: (a.slot.start_time, a.slot.schedule_id))
    return merged


async def list_schedule_slots(
    db: AsyncSession,
    schedule_id: int,
    window_start: datetime,
    window_end: datetime,
) -> list[AnnotatedSlot]:
    """Slots of a single schedule with booking status."""
    schedule = await db.get(Schedule, schedule_id)
    if schedule is None:
        msg = f"schedule {schedule_id} not found"
        raise NotFound(msg)
    return await _annotated_window(db, [schedule], window_start, window_end, skip_invalid=False)


async def list_available_slots(
    db: AsyncSession,
    window_start: datetime | None = None,
    window_end: datetime | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[AnnotatedSlot]:
    """Open future slots across every schedule, earliest first.

    Defaults to the next ``available_window_days`` days.
    """
    now = now or datetime.now(timezone.utc)
    window_start = max(as_utc(window_start), now) if window_start else now
    window_end = as_utc(window_end) if window_end else now + timedelta(days=get_settings().available_window_days)

    schedules = (await db.execute(select(Schedule).order_by(Schedule.id))).scalars().all()
    slots = [a for a in await _annotated_window(db, schedules, window_start, window_end, skip_invalid=True)
             if not a.is_booked]
    return slots[:limit] if limit and limit > 0 else slots


async def list_all_slots(
    db: AsyncSession,
    window_start: datetime | None = None,
    window_end: datetime | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[AnnotatedSlot]:
    """Admin calendar: every slot in the window, booked or not."""
    now = now or datetime.now(timezone.utc)
    window_start = as_utc(window_start) if window_start else now
    window_end = as_utc(window_end) if window_end else window_start + timedelta(days=get_settings().admin_window_days)

    schedules = (await db.execute(select(Schedule).order_by(Schedule.id))).scalars().all()
    slots = await _annotated_window(db, schedules, window_start, window_end, skip_invalid=True)
    return slots[:limit] if limit and limit > 0 else slots
