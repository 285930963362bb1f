"""Booking endpoints: claim, cancel, check in, admin assignment."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.auth.dependencies import get_current_user, require_admin
from shiftwatch.bookings import service
from shiftwatch.bookings.schemas import (
    AdminAssignRequest,
    BookingCreateRequest,
    BookingListResponse,
    BookingResponse,
    ReassignRequest,
)
from shiftwatch.database import get_session
from shiftwatch.db.models import User

router = APIRouter(prefix="/api/v1", tags=["Bookings"])


@router.post("/bookings", response_model=BookingResponse, status_code=201)
async def create_booking(
    body: BookingCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BookingResponse:
    booking = await service.create_booking(
        db, user, body.schedule_id, body.start_time, buddy_name=body.buddy_name, buddy_phone=body.buddy_phone
    )
    return BookingResponse.model_validate(booking)


@router.get("/bookings/my", response_model=BookingListResponse)
async def my_bookings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BookingListResponse:
    bookings = await service.list_user_bookings(db, user.id)
    return BookingListResponse(bookings=[BookingResponse.model_validate(b) for b in bookings])


@router.post("/bookings/{booking_id}/checkin", response_model=BookingResponse)
async def check_in(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BookingResponse:
    booking = await service.check_in(db, booking_id, user)
    return BookingResponse.model_validate(booking)


@router.delete("/bookings/{booking_id}", status_code=204)
async def cancel_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.cancel_booking(db, booking_id, user)


# ── Admin ──


@router.post("/admin/bookings/assign", response_model=BookingResponse, status_code=201)
async def assign_slot(
    body: AdminAssignRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> BookingResponse:
    booking = await service.assign_slot(
        db, admin, body.user_id, body.schedule_id, body.start_time, buddy_name=body.buddy_name
    )
    return BookingResponse.model_validate(booking)


@router.post("/admin/bookings/{booking_id}/reassign", response_model=BookingResponse)
async def reassign_booking(
    booking_id: int,
    body: ReassignRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> BookingResponse:
    booking = await service.reassign(db, booking_id, body.user_id, admin)
    return BookingResponse.model_validate(booking)


@router.delete("/admin/bookings/{booking_id}", status_code=204)
async def admin_cancel_booking(
    booking_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> None:
    """Unassign a volunteer; the cancellation cutoff does not apply."""
    await service.cancel_booking(db, booking_id, admin)
