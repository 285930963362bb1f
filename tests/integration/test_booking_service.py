"""Integration tests for the booking lifecycle."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from shiftwatch.bookings import service
from shiftwatch.db.models import Booking, OutboxMessage, PointsHistory, UserGameState
from shiftwatch.errors import (
    Forbidden,
    NotFound,
    OutOfRange,
    OutsideCheckInWindow,
    SlotConflict,
    TooLateToCancel,
)
from shiftwatch.outbox.service import MessageType

NOW = datetime(2026, 11, 1, tzinfo=timezone.utc)
START = datetime(2026, 11, 5, 18, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def schedule(make_schedule):
    return await make_schedule("0 18 * * *", "UTC", duration_minutes=120)


async def _outbox(db, booking_id: int | None = None) -> list[OutboxMessage]:
    query = select(OutboxMessage).order_by(OutboxMessage.id).execution_options(populate_existing=True)
    if booking_id is not None:
        query = query.where(OutboxMessage.booking_id == booking_id)
    return list((await db.execute(query)).scalars().all())


async def _ledger(db, user_id: int) -> list[PointsHistory]:
    result = await db.execute(
        select(PointsHistory).where(PointsHistory.user_id == user_id).order_by(PointsHistory.id)
    )
    return list(result.scalars().all())


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_books_slot_and_queues_messages(self, db_session, schedule, volunteer):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)

        assert booking.user_id == volunteer.id
        assert booking.shift_start == START
        assert booking.shift_end == START + timedelta(hours=2)

        messages = await _outbox(db_session, booking.id)
        assert [m.message_type for m in messages] == [
            MessageType.BOOKING_CONFIRMATION,
            MessageType.SHIFT_REMINDER,
            MessageType.SHIFT_REMINDER,
        ]
        reminders = sorted(m.send_at for m in messages[1:])
        assert reminders == [START - timedelta(days=1), START - timedelta(hours=1)]
        assert all(m.recipient == volunteer.phone for m in messages)

    @pytest.mark.asyncio
    async def test_reminders_already_due_are_skipped(self, db_session, schedule, volunteer):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=START - timedelta(hours=3))
        types = [m.message_type for m in await _outbox(db_session, booking.id)]
        assert types.count(MessageType.SHIFT_REMINDER) == 1

    @pytest.mark.asyncio
    async def test_buddy_resolved_by_phone(self, db_session, schedule, volunteer, make_user):
        buddy = await make_user("+27820000002", "Sipho")
        booking = await service.create_booking(
            db_session, volunteer, schedule.id, START, buddy_name="ignored", buddy_phone="+27820000002", now=NOW
        )
        assert (booking.buddy_user_id, booking.buddy_name) == (buddy.id, "Sipho")

    @pytest.mark.asyncio
    async def test_unknown_buddy_phone_keeps_free_text_name(self, db_session, schedule, volunteer):
        booking = await service.create_booking(
            db_session, volunteer, schedule.id, START, buddy_name="Neighbour", buddy_phone="+10000000000", now=NOW
        )
        assert (booking.buddy_user_id, booking.buddy_name) == (None, "Neighbour")

    @pytest.mark.asyncio
    async def test_second_booking_conflicts(self, db_session, schedule, volunteer, make_user):
        other = await make_user("+27820000002", "Sipho")
        await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)

        with pytest.raises(SlotConflict):
            await service.create_booking(db_session, other, schedule.id, START, now=NOW)

    @pytest.mark.asyncio
    async def test_unique_constraint_backstops_racing_insert(self, db_session, schedule, volunteer, make_user, monkeypatch):
        """A racer that passed the pre-check still loses on the unique constraint."""
        other = await make_user("+27820000002", "Sipho")
        volunteer_id, other_id, schedule_id = volunteer.id, other.id, schedule.id
        await service.create_booking(db_session, volunteer, schedule_id, START, now=NOW)

        async def _never_taken(_db, _slot):
            return False

        monkeypatch.setattr(service, "_slot_taken", _never_taken)
        other = await db_session.get(type(volunteer), other_id)
        with pytest.raises(SlotConflict):
            await service.create_booking(db_session, other, schedule_id, START, now=NOW)

        result = await db_session.execute(select(Booking.user_id).where(Booking.schedule_id == schedule_id))
        assert result.scalars().all() == [volunteer_id]

    @pytest.mark.asyncio
    async def test_not_a_slot(self, db_session, schedule, volunteer):
        with pytest.raises(OutOfRange):
            await service.create_booking(db_session, volunteer, schedule.id, START + timedelta(minutes=30), now=NOW)

    @pytest.mark.asyncio
    async def test_started_slot_rejected(self, db_session, schedule, volunteer):
        with pytest.raises(OutOfRange):
            await service.create_booking(db_session, volunteer, schedule.id, START, now=START + timedelta(minutes=1))

    @pytest.mark.asyncio
    async def test_outside_active_dates(self, db_session, make_schedule, volunteer):
        limited = await make_schedule("0 18 * * *", end_date=date(2026, 11, 3))
        with pytest.raises(OutOfRange):
            await service.create_booking(db_session, volunteer, limited.id, START, now=NOW)

    @pytest.mark.asyncio
    async def test_unknown_schedule(self, db_session, volunteer):
        with pytest.raises(NotFound):
            await service.create_booking(db_session, volunteer, 999, START, now=NOW)

    @pytest.mark.asyncio
    async def test_list_user_bookings_sorted(self, db_session, schedule, volunteer):
        later = await service.create_booking(db_session, volunteer, schedule.id, START + timedelta(days=1), now=NOW)
        earlier = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        assert [b.id for b in await service.list_user_bookings(db_session, volunteer.id)] == [earlier.id, later.id]


class TestAdminAssign:
    @pytest.mark.asyncio
    async def test_assign_on_behalf(self, db_session, schedule, volunteer, admin):
        booking = await service.assign_slot(db_session, admin, volunteer.id, schedule.id, START, now=NOW)
        assert booking.user_id == volunteer.id

        types = [m.message_type for m in await _outbox(db_session, booking.id)]
        assert types[0] == MessageType.ADMIN_SHIFT_ASSIGNMENT
        assert types.count(MessageType.SHIFT_REMINDER) == 2

    @pytest.mark.asyncio
    async def test_volunteer_cannot_assign(self, db_session, schedule, volunteer, make_user):
        other = await make_user("+27820000002", "Sipho")
        with pytest.raises(Forbidden):
            await service.assign_slot(db_session, volunteer, other.id, schedule.id, START, now=NOW)

    @pytest.mark.asyncio
    async def test_assign_unknown_user(self, db_session, schedule, admin):
        with pytest.raises(NotFound):
            await service.assign_slot(db_session, admin, 999, schedule.id, START, now=NOW)


class TestCancel:
    @pytest.mark.asyncio
    async def test_owner_cancel_applies_dropout(self, db_session, schedule, volunteer):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        booking_id = booking.id

        await service.cancel_booking(db_session, booking_id, volunteer, now=NOW)

        assert await db_session.get(Booking, booking_id) is None
        (entry,) = await _ledger(db_session, volunteer.id)
        assert (entry.reason, entry.points_awarded) == ("shift_dropout", -10)
        state = await db_session.get(UserGameState, volunteer.id, populate_existing=True)
        assert state.total_points == -10

        types = [m.message_type for m in await _outbox(db_session, booking_id)]
        assert types == [MessageType.BOOKING_CONFIRMATION, MessageType.BOOKING_CANCELLATION]

    @pytest.mark.asyncio
    async def test_cancelled_slot_can_be_rebooked(self, db_session, schedule, volunteer, make_user):
        other = await make_user("+27820000002", "Sipho")
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        await service.cancel_booking(db_session, booking.id, volunteer, now=NOW)

        rebooked = await service.create_booking(db_session, other, schedule.id, START, now=NOW)
        assert rebooked.user_id == other.id

    @pytest.mark.asyncio
    async def test_too_late_for_owner(self, db_session, schedule, volunteer):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        with pytest.raises(TooLateToCancel):
            await service.cancel_booking(db_session, booking.id, volunteer, now=START - timedelta(minutes=60))

    @pytest.mark.asyncio
    async def test_cutoff_boundary_allowed(self, db_session, schedule, volunteer):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        await service.cancel_booking(db_session, booking.id, volunteer, now=START - timedelta(minutes=120))
        assert await db_session.get(Booking, booking.id) is None

    @pytest.mark.asyncio
    async def test_admin_overrides_cutoff_without_penalty(self, db_session, schedule, volunteer, admin):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        booking_id = booking.id

        await service.cancel_booking(db_session, booking_id, admin, now=START - timedelta(minutes=10))

        assert await _ledger(db_session, volunteer.id) == []
        types = [m.message_type for m in await _outbox(db_session, booking_id)]
        assert types[-1] == MessageType.ADMIN_SHIFT_UNASSIGNMENT
        assert MessageType.SHIFT_REMINDER not in types

    @pytest.mark.asyncio
    async def test_other_volunteer_forbidden(self, db_session, schedule, volunteer, make_user):
        other = await make_user("+27820000002", "Sipho")
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        with pytest.raises(Forbidden):
            await service.cancel_booking(db_session, booking.id, other, now=NOW)

    @pytest.mark.asyncio
    async def test_unknown_booking(self, db_session, volunteer):
        with pytest.raises(NotFound):
            await service.cancel_booking(db_session, 12345, volunteer, now=NOW)


class TestCheckIn:
    @pytest.mark.asyncio
    async def test_early_checkin_scores_bonus(self, db_session, schedule, volunteer):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        at = START - timedelta(minutes=20)

        checked = await service.check_in(db_session, booking.id, volunteer, at)

        assert checked.checked_in_at == at
        assert [e.reason for e in await _ledger(db_session, volunteer.id)] == ["shift_checkin", "early_checkin"]
        state = await db_session.get(UserGameState, volunteer.id, populate_existing=True)
        assert state.total_points == 13

    @pytest.mark.asyncio
    async def test_repeat_checkin_is_noop(self, db_session, schedule, volunteer):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        first = START - timedelta(minutes=5)
        await service.check_in(db_session, booking.id, volunteer, first)

        again = await service.check_in(db_session, booking.id, volunteer, START + timedelta(minutes=5))

        assert again.checked_in_at == first
        assert len(await _ledger(db_session, volunteer.id)) == 1

    @pytest.mark.asyncio
    async def test_window_enforced(self, db_session, schedule, volunteer):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        with pytest.raises(OutsideCheckInWindow):
            await service.check_in(db_session, booking.id, volunteer, START - timedelta(minutes=31))
        with pytest.raises(OutsideCheckInWindow):
            await service.check_in(db_session, booking.id, volunteer, START + timedelta(hours=2, seconds=1))

    @pytest.mark.asyncio
    async def test_admin_checkin_outside_window(self, db_session, schedule, volunteer, admin):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        checked = await service.check_in(db_session, booking.id, admin, START - timedelta(hours=3))
        assert checked.checked_in_at is not None
        # Points go to the booking holder
        assert len(await _ledger(db_session, volunteer.id)) == 2

    @pytest.mark.asyncio
    async def test_other_volunteer_forbidden(self, db_session, schedule, volunteer, make_user):
        other = await make_user("+27820000002", "Sipho")
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        with pytest.raises(Forbidden):
            await service.check_in(db_session, booking.id, other, START)


class TestReassign:
    @pytest.mark.asyncio
    async def test_moves_booking_and_reminders(self, db_session, schedule, volunteer, admin, make_user):
        other = await make_user("+27820000002", "Sipho")
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)

        moved = await service.reassign(db_session, booking.id, other.id, admin, now=NOW)

        assert moved.user_id == other.id
        messages = await _outbox(db_session, booking.id)
        reminders = [m for m in messages if m.message_type == MessageType.SHIFT_REMINDER]
        assert {m.recipient for m in reminders} == {"+27820000002"}
        reassigned = [m for m in messages if m.message_type == MessageType.BOOKING_REASSIGNED]
        assert sorted((m.user_id, m.payload["direction"]) for m in reassigned) == sorted(
            [(volunteer.id, "removed"), (other.id, "added")]
        )

    @pytest.mark.asyncio
    async def test_same_user_is_noop(self, db_session, schedule, volunteer, admin):
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        before = len(await _outbox(db_session))
        await service.reassign(db_session, booking.id, volunteer.id, admin, now=NOW)
        assert len(await _outbox(db_session)) == before

    @pytest.mark.asyncio
    async def test_volunteer_cannot_reassign(self, db_session, schedule, volunteer, make_user):
        other = await make_user("+27820000002", "Sipho")
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        with pytest.raises(Forbidden):
            await service.reassign(db_session, booking.id, other.id, volunteer, now=NOW)

    @pytest.mark.asyncio
    async def test_earned_points_stay_with_previous_holder(self, db_session, schedule, volunteer, admin, make_user):
        other = await make_user("+27820000002", "Sipho")
        booking = await service.create_booking(db_session, volunteer, schedule.id, START, now=NOW)
        await service.check_in(db_session, booking.id, volunteer, START)

        await service.reassign(db_session, booking.id, other.id, admin, now=NOW)

        count = await db_session.execute(
            select(func.count()).select_from(PointsHistory).where(PointsHistory.user_id == volunteer.id)
        )
        assert count.scalar_one() == 1
        assert await _ledger(db_session, other.id) == []
