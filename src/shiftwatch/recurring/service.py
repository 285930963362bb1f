"""Recurring assignments: standing weekly claims turned into bookings.

An assignment says "this volunteer holds schedule S every weekday D in time
slot T". ``materialize_upcoming_bookings`` runs hourly from the worker (and on
demand from the admin API): it walks the admin calendar for the coming
window and books every free slot that matches an active assignment. Slots that
are already taken are left alone.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.bookings.service import book_recurring_slot
from shiftwatch.config import get_settings
from shiftwatch.db.models import RecurringAssignment, Schedule
from shiftwatch.errors import DuplicateRecurringAssignment, InvalidRecurringAssignment, NotFound, SlotConflict
from shiftwatch.scheduling.availability import list_all_slots
from shiftwatch.scheduling.cron import parse_cron
from shiftwatch.scheduling.expander import ShiftSlot, load_zone
from shiftwatch.time_utils import as_utc
from shiftwatch.users.service import require_user

logger = logging.getLogger(__name__)

TIME_SLOT_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)-([01]\d|2[0-3]):([0-5]\d)$")
EDITABLE_FIELDS = ("user_id", "schedule_id", "day_of_week", "time_slot", "buddy_name", "description")


def parse_time_slot(text: str) -> tuple[time, time]:
    """``"HH:MM-HH:MM"`` to a (start, end) pair of wall times."""
    match = TIME_SLOT_RE.match(text or "")
    if match is None:
        msg = f"time_slot must look like HH:MM-HH:MM, got {text!r}"
        raise InvalidRecurringAssignment(msg)
    sh, sm, eh, em = (int(g) for g in match.groups())
    return time(sh, sm), time(eh, em)


def slot_pattern(slot: ShiftSlot, tz_name: str) -> tuple[int, str]:
    """The (day_of_week, time_slot) an assignment needs to claim ``slot``."""
    zone = load_zone(tz_name)
    start = slot.start_time.astimezone(zone)
    end = slot.end_time.astimezone(zone)
    return start.isoweekday() % 7, f"{start:%H:%M}-{end:%H:%M}"


def _validate(schedule: Schedule, day_of_week: int, time_slot: str) -> None:
    if not 0 <= day_of_week <= 6:
        msg = "day_of_week must be between 0 (Sunday) and 6 (Saturday)"
        raise InvalidRecurringAssignment(msg)

    start, end = parse_time_slot(time_slot)
    cron = parse_cron(schedule.cron_expr)
    if start not in cron.times_of_day():
        msg = f"schedule {schedule.id} has no shift starting at {start:%H:%M}"
        raise InvalidRecurringAssignment(msg)

    expected_end = (datetime.combine(date.min, start) + timedelta(minutes=schedule.duration_minutes)).time()
    if end != expected_end:
        msg = f"shifts of schedule {schedule.id} starting at {start:%H:%M} end at {expected_end:%H:%M}"
        raise InvalidRecurringAssignment(msg)


async def _get_schedule(db: AsyncSession, schedule_id: int) -> Schedule:
    schedule = await db.get(Schedule, schedule_id)
    if schedule is None:
        msg = f"schedule {schedule_id} not found"
        raise NotFound(msg)
    return schedule


async def get_assignment(db: AsyncSession, assignment_id: int) -> RecurringAssignment:
    assignment = await db.get(RecurringAssignment, assignment_id)
    if assignment is None:
        msg = f"recurring assignment {assignment_id} not found"
        raise NotFound(msg)
    return assignment


async def list_assignments(db: AsyncSession, user_id: int | None = None) -> list[RecurringAssignment]:
    """Active assignments ordered by weekday and time slot."""
    query = select(RecurringAssignment).where(RecurringAssignment.is_active.is_(True))
    if user_id is not None:
        query = query.where(RecurringAssignment.user_id == user_id)
    result = await db.execute(
        query.order_by(RecurringAssignment.day_of_week, RecurringAssignment.time_slot, RecurringAssignment.id)
    )
    return list(result.scalars().all())


async def create_assignment(
    db: AsyncSession,
    *,
    user_id: int,
    schedule_id: int,
    day_of_week: int,
    time_slot: str,
    buddy_name: str | None = None,
    description: str | None = None,
) -> RecurringAssignment:
    """Create an assignment, or reactivate the deleted one with the same pattern."""
    await require_user(db, user_id)
    schedule = await _get_schedule(db, schedule_id)
    _validate(schedule, day_of_week, time_slot)

    existing = (
        await db.execute(
            select(RecurringAssignment).where(
                RecurringAssignment.user_id == user_id,
                RecurringAssignment.schedule_id == schedule_id,
                RecurringAssignment.day_of_week == day_of_week,
                RecurringAssignment.time_slot == time_slot,
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        if existing.is_active:
            msg = f"user {user_id} already holds this slot as assignment {existing.id}"
            raise DuplicateRecurringAssignment(msg)
        existing.is_active = True
        existing.buddy_name = buddy_name
        existing.description = description
        await db.commit()
        logger.info("Reactivated recurring assignment %s", existing.id)
        return existing

    assignment = RecurringAssignment(
        user_id=user_id,
        schedule_id=schedule_id,
        day_of_week=day_of_week,
        time_slot=time_slot,
        buddy_name=buddy_name,
        description=description,
    )
    db.add(assignment)
    await db.commit()
    await db.refresh(assignment)
    logger.info("Created recurring assignment %s for user %s", assignment.id, user_id)
    return assignment


async def update_assignment(db: AsyncSession, assignment_id: int, changes: dict[str, Any]) -> RecurringAssignment:
    """Apply an edit. Null user, schedule, weekday or time slot values are ignored."""
    assignment = await get_assignment(db, assignment_id)
    values = {field: getattr(assignment, field) for field in EDITABLE_FIELDS}
    for field, value in changes.items():
        if field not in EDITABLE_FIELDS:
            continue
        if value is None and field not in ("buddy_name", "description"):
            continue
        values[field] = value

    await require_user(db, values["user_id"])
    schedule = await _get_schedule(db, values["schedule_id"])
    _validate(schedule, values["day_of_week"], values["time_slot"])

    for field, value in values.items():
        setattr(assignment, field, value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        msg = f"user {values['user_id']} already holds this slot"
        raise DuplicateRecurringAssignment(msg) from None
    await db.refresh(assignment)
    logger.info("Updated recurring assignment %s", assignment.id)
    return assignment


async def delete_assignment(db: AsyncSession, assignment_id: int) -> None:
    """Deactivate an assignment. Bookings it already produced are kept."""
    assignment = await get_assignment(db, assignment_id)
    assignment.is_active = False
    await db.commit()
    logger.info("Deactivated recurring assignment %s", assignment_id)


@dataclass(frozen=True)
class _Pattern:
    id: int
    user_id: int
    schedule_id: int
    day_of_week: int
    time_slot: str
    buddy_name: str | None


@dataclass
class MaterializeResult:
    window_start: datetime
    window_end: datetime
    created: int = 0
    skipped: int = 0


async def materialize_upcoming_bookings(
    db: AsyncSession,
    window_start: datetime | None = None,
    window_end: datetime | None = None,
    now: datetime | None = None,
) -> MaterializeResult:
    """Book free future slots in the window for matching active assignments.

    Defaults to the next ``recurring_window_days`` days. When several
    assignments match a slot, the oldest one wins. Each booking commits on its
    own, so a conflict only skips that slot.
    """
    now = now or datetime.now(timezone.utc)
    window_start = max(as_utc(window_start), now) if window_start else now
    window_end = as_utc(window_end) if window_end else now + timedelta(days=get_settings().recurring_window_days)
    result = MaterializeResult(window_start=window_start, window_end=window_end)

    patterns: dict[tuple[int, int, str], list[_Pattern]] = {}
    for a in sorted(await list_assignments(db), key=lambda a: a.id):
        patterns.setdefault((a.schedule_id, a.day_of_week, a.time_slot), []).append(
            _Pattern(a.id, a.user_id, a.schedule_id, a.day_of_week, a.time_slot, a.buddy_name)
        )
    if not patterns:
        logger.info("No recurring assignments to materialize")
        return result

    schedule_ids = {schedule_id for schedule_id, _, _ in patterns}
    calendar = [
        item
        for item in await list_all_slots(db, window_start, window_end, now=now)
        if item.slot.schedule_id in schedule_ids and item.slot.start_time > now
    ]

    for item in calendar:
        day_of_week, time_slot = slot_pattern(item.slot, item.timezone or "UTC")
        candidates = patterns.get((item.slot.schedule_id, day_of_week, time_slot))
        if not candidates:
            continue
        if item.is_booked:
            result.skipped += 1
            continue

        holder = candidates[0]
        try:
            booking = await book_recurring_slot(
                db, holder.user_id, item.slot, item.schedule_name or "", holder.buddy_name, holder.id, now
            )
        except SlotConflict:
            result.skipped += 1
            continue
        except NotFound:
            logger.warning("Recurring assignment %s refers to a missing user", holder.id)
            continue
        result.created += 1
        logger.info(
            "Booked %s for user %s from recurring assignment %s", booking.shift_start.isoformat(), holder.user_id,
            holder.id,
        )

    logger.info(
        "Materialized recurring assignments: %d created, %d skipped, %d slots",
        result.created, result.skipped, len(calendar),
    )
    return result
