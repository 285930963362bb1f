"""Booking lifecycle: claim, cancel, check in, reassign.

Slot exclusivity rests on the unique (schedule_id, shift_start) constraint.
The pre-check only produces a friendlier error in the common case; a
concurrent insert that slips past it is caught as an IntegrityError and
reported as SlotConflict as well.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.config import get_settings
from shiftwatch.db.models import Booking, Report, Schedule, User
from shiftwatch.errors import (
    Forbidden,
    NotFound,
    OutOfRange,
    OutsideCheckInWindow,
    SlotConflict,
    TooLateToCancel,
)
from shiftwatch.gamification.engine import GamificationEngine
from shiftwatch.outbox.service import MessageType, enqueue_for_user, redirect_pending, withdraw_pending
from shiftwatch.scheduling.expander import ShiftSlot, find_slot
from shiftwatch.time_utils import as_utc
from shiftwatch.users.service import get_user_by_phone, require_user

logger = logging.getLogger(__name__)


async def get_booking(db: AsyncSession, booking_id: int, *, for_update: bool = False) -> Booking:
    query = select(Booking).where(Booking.id == booking_id)
    if for_update:
        query = query.with_for_update()
    booking = (await db.execute(query)).scalar_one_or_none()
    if booking is None:
        msg = f"booking {booking_id} not found"
        raise NotFound(msg)
    return booking


async def list_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    result = await db.execute(select(Booking).where(Booking.user_id == user_id).order_by(Booking.shift_start))
    return list(result.scalars().all())


async def is_completed(db: AsyncSession, booking_id: int) -> bool:
    """A booking is completed once a report references it."""
    return bool((await db.execute(select(exists().where(Report.booking_id == booking_id)))).scalar())


def _booking_payload(booking: Booking, schedule_name: str) -> dict:
    return {
        "booking_id": booking.id,
        "schedule_id": booking.schedule_id,
        "schedule_name": schedule_name,
        "shift_start": booking.shift_start.isoformat(),
        "shift_end": booking.shift_end.isoformat(),
    }


async def _resolve_slot(db: AsyncSession, schedule_id: int, start_time: datetime, now: datetime) -> tuple[Schedule, ShiftSlot]:
    schedule = await db.get(Schedule, schedule_id)
    if schedule is None:
        msg = f"schedule {schedule_id} not found"
        raise NotFound(msg)

    slot = find_slot(schedule, start_time)
    if slot is None:
        msg = f"{as_utc(start_time).isoformat()} is not a slot of schedule {schedule_id}"
        raise OutOfRange(msg)
    if slot.start_time <= now:
        msg = f"slot {slot.start_time.isoformat()} has already started"
        raise OutOfRange(msg)
    return schedule, slot


async def _slot_taken(db: AsyncSession, slot: ShiftSlot) -> bool:
    taken = await db.execute(
        select(Booking.id).where(Booking.schedule_id == slot.schedule_id, Booking.shift_start == slot.start_time)
    )
    return taken.scalar_one_or_none() is not None


async def _insert_booking(
    db: AsyncSession,
    slot: ShiftSlot,
    user_id: int,
    buddy_name: str | None,
    buddy_user_id: int | None,
) -> Booking:
    if await _slot_taken(db, slot):
        msg = f"slot {slot.start_time.isoformat()} of schedule {slot.schedule_id} is already booked"
        raise SlotConflict(msg)

    booking = Booking(
        user_id=user_id,
        schedule_id=slot.schedule_id,
        shift_start=slot.start_time,
        shift_end=slot.end_time,
        buddy_name=buddy_name,
        buddy_user_id=buddy_user_id,
    )
    db.add(booking)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        msg = f"slot {slot.start_time.isoformat()} of schedule {slot.schedule_id} is already booked"
        raise SlotConflict(msg) from None
    return booking


def _enqueue_reminders(db: AsyncSession, booking: Booking, user: User, schedule_name: str, now: datetime) -> int:
    queued = 0
    for minutes in get_settings().reminder_offsets_minutes:
        send_at = booking.shift_start - timedelta(minutes=minutes)
        if send_at <= now:
            continue
        enqueue_for_user(
            db,
            user,
            MessageType.SHIFT_REMINDER,
            {**_booking_payload(booking, schedule_name), "minutes_before": minutes},
            booking_id=booking.id,
            send_at=send_at,
        )
        queued += 1
    return queued


async def create_booking(
    db: AsyncSession,
    user: User,
    schedule_id: int,
    start_time: datetime,
    buddy_name: str | None = None,
    buddy_phone: str | None = None,
    now: datetime | None = None,
) -> Booking:
    """Claim a slot for ``user``.

    Raises NotFound, OutOfRange (not a slot, or already started) or SlotConflict.
    """
    now = now or datetime.now(timezone.utc)
    schedule, slot = await _resolve_slot(db, schedule_id, start_time, now)

    buddy_user_id = None
    if buddy_phone:
        buddy = await get_user_by_phone(db, buddy_phone)
        if buddy is not None:
            buddy_user_id = buddy.id
            buddy_name = buddy.name

    booking = await _insert_booking(db, slot, user.id, buddy_name, buddy_user_id)
    enqueue_for_user(
        db, user, MessageType.BOOKING_CONFIRMATION, _booking_payload(booking, schedule.name), booking_id=booking.id
    )
    _enqueue_reminders(db, booking, user, schedule.name, now)
    await db.commit()

    logger.info("User %s booked schedule %s at %s", user.id, schedule.id, slot.start_time.isoformat())
    return booking


async def assign_slot(
    db: AsyncSession,
    actor: User,
    user_id: int,
    schedule_id: int,
    start_time: datetime,
    buddy_name: str | None = None,
    now: datetime | None = None,
) -> Booking:
    """Admin books a slot on behalf of a volunteer."""
    if not actor.is_admin:
        msg = "only admins can assign shifts"
        raise Forbidden(msg)
    now = now or datetime.now(timezone.utc)
    target = await require_user(db, user_id)
    schedule, slot = await _resolve_slot(db, schedule_id, start_time, now)

    booking = await _insert_booking(db, slot, target.id, buddy_name, None)
    enqueue_for_user(
        db,
        target,
        MessageType.ADMIN_SHIFT_ASSIGNMENT,
        {**_booking_payload(booking, schedule.name), "assigned_by": actor.id},
        booking_id=booking.id,
    )
    _enqueue_reminders(db, booking, target, schedule.name, now)
    await db.commit()

    logger.info("Admin %s assigned user %s to schedule %s at %s", actor.id, target.id, schedule.id, slot.start_time)
    return booking


async def book_recurring_slot(
    db: AsyncSession,
    user_id: int,
    slot: ShiftSlot,
    schedule_name: str,
    buddy_name: str | None,
    assignment_id: int,
    now: datetime | None = None,
) -> Booking:
    """Book an expanded slot for the holder of a recurring assignment and commit.

    Raises SlotConflict when the slot was taken in the meantime.
    """
    now = now or datetime.now(timezone.utc)
    user = await require_user(db, user_id)
    booking = await _insert_booking(db, slot, user.id, buddy_name, None)
    enqueue_for_user(
        db,
        user,
        MessageType.BOOKING_CONFIRMATION,
        {**_booking_payload(booking, schedule_name), "recurring_assignment_id": assignment_id},
        booking_id=booking.id,
    )
    _enqueue_reminders(db, booking, user, schedule_name, now)
    await db.commit()
    return booking


async def cancel_booking(db: AsyncSession, booking_id: int, actor: User, now: datetime | None = None) -> None:
    """Release a booking.

    Volunteers may cancel their own bookings until ``cancellation_cutoff_minutes``
    before the shift; admins may cancel any booking at any time. A volunteer
    cancelling their own shift incurs the dropout penalty.
    """
    now = now or datetime.now(timezone.utc)
    booking = await get_booking(db, booking_id, for_update=True)

    is_owner = booking.user_id == actor.id
    if not (is_owner or actor.is_admin):
        msg = "you can only cancel your own bookings"
        raise Forbidden(msg)

    cutoff = booking.shift_start - timedelta(minutes=get_settings().cancellation_cutoff_minutes)
    if now > cutoff and not actor.is_admin:
        msg = f"bookings can only be cancelled until {cutoff.isoformat()}"
        raise TooLateToCancel(msg)

    owner = await require_user(db, booking.user_id)
    schedule = await db.get(Schedule, booking.schedule_id)
    payload = _booking_payload(booking, schedule.name if schedule else "")

    if is_owner:
        await GamificationEngine(db).on_cancelled(booking, now)

    await withdraw_pending(db, booking.id)
    if is_owner:
        enqueue_for_user(db, owner, MessageType.BOOKING_CANCELLATION, payload, booking_id=booking.id)
    else:
        enqueue_for_user(
            db, owner, MessageType.ADMIN_SHIFT_UNASSIGNMENT, {**payload, "unassigned_by": actor.id},
            booking_id=booking.id,
        )

    await db.delete(booking)
    await db.commit()
    logger.info("User %s cancelled booking %s", actor.id, booking_id)


async def check_in(db: AsyncSession, booking_id: int, actor: User, at_time: datetime | None = None) -> Booking:
    """Record arrival for a shift.

    The window opens ``checkin_opens_minutes`` before the shift and closes at
    its end; admins may check in outside it. Checking in again is a no-op that
    returns the booking unchanged.
    """
    at_time = as_utc(at_time) if at_time else datetime.now(timezone.utc)
    booking = await get_booking(db, booking_id, for_update=True)

    if booking.user_id != actor.id and not actor.is_admin:
        msg = "you can only check in to your own bookings"
        raise Forbidden(msg)

    if booking.checked_in_at is not None:
        return booking

    opens = booking.shift_start - timedelta(minutes=get_settings().checkin_opens_minutes)
    if not (opens <= at_time <= booking.shift_end) and not actor.is_admin:
        msg = f"check-in is open from {opens.isoformat()} to {booking.shift_end.isoformat()}"
        raise OutsideCheckInWindow(msg)

    booking.checked_in_at = at_time
    await GamificationEngine(db).on_checked_in(booking)
    await db.commit()

    logger.info("User %s checked in to booking %s", booking.user_id, booking.id)
    return booking


async def reassign(
    db: AsyncSession, booking_id: int, new_user_id: int, actor: User, now: datetime | None = None
) -> Booking:
    """Move a booking to another volunteer. Points already earned stay with the previous holder."""
    if not actor.is_admin:
        msg = "only admins can reassign bookings"
        raise Forbidden(msg)

    booking = await get_booking(db, booking_id, for_update=True)
    if booking.user_id == new_user_id:
        return booking

    previous = await require_user(db, booking.user_id)
    target = await require_user(db, new_user_id)
    schedule = await db.get(Schedule, booking.schedule_id)
    payload = {**_booking_payload(booking, schedule.name if schedule else ""), "reassigned_by": actor.id}

    booking.user_id = target.id
    await redirect_pending(db, booking.id, target)
    enqueue_for_user(
        db, previous, MessageType.BOOKING_REASSIGNED, {**payload, "direction": "removed"}, booking_id=booking.id
    )
    enqueue_for_user(
        db, target, MessageType.BOOKING_REASSIGNED, {**payload, "direction": "added"}, booking_id=booking.id
    )
    await db.commit()

    logger.info("Admin %s reassigned booking %s from user %s to %s", actor.id, booking.id, previous.id, target.id)
    return booking
