"""Schedule and slot endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.auth.dependencies import get_current_user, require_admin
from shiftwatch.config import get_settings
from shiftwatch.database import get_session
from shiftwatch.db.models import User
from shiftwatch.scheduling import availability, service
from shiftwatch.scheduling.schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    ScheduleCreateRequest,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleUpdateRequest,
    SlotListResponse,
    SlotResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Scheduling"])


# ── Volunteer endpoints ──


@router.get("/schedules", response_model=ScheduleListResponse)
async def list_schedules(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ScheduleListResponse:
    schedules = await service.list_schedules(db)
    return ScheduleListResponse(schedules=[ScheduleResponse.model_validate(s) for s in schedules])


@router.get("/schedules/{schedule_id}/slots", response_model=SlotListResponse)
async def schedule_slots(
    schedule_id: int,
    from_: datetime | None = Query(None, alias="from"),
    to: datetime | None = Query(None),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SlotListResponse:
    """Slots of one schedule with booking status. Defaults to the next available_window_days days."""
    start = from_ or datetime.now(timezone.utc)
    end = to or start + timedelta(days=get_settings().available_window_days)
    items = await availability.list_schedule_slots(db, schedule_id, start, end)
    slots = [SlotResponse.from_annotated(i, include_booker=False) for i in items]
    return SlotListResponse(slots=slots, total=len(slots))


@router.get("/shifts/available", response_model=SlotListResponse)
async def available_shifts(
    from_: datetime | None = Query(None, alias="from"),
    to: datetime | None = Query(None),
    limit: int | None = Query(None, ge=1, le=1000),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SlotListResponse:
    items = await availability.list_available_slots(db, from_, to, limit)
    slots = [SlotResponse.from_annotated(i) for i in items]
    return SlotListResponse(slots=slots, total=len(slots))


# ── Admin endpoints ──


@router.get("/admin/shifts", response_model=SlotListResponse)
async def admin_shifts(
    from_: datetime | None = Query(None, alias="from"),
    to: datetime | None = Query(None),
    limit: int | None = Query(None, ge=1, le=5000),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> SlotListResponse:
    items = await availability.list_all_slots(db, from_, to, limit)
    slots = [SlotResponse.from_annotated(i) for i in items]
    return SlotListResponse(slots=slots, total=len(slots))


@router.post("/admin/schedules", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    body: ScheduleCreateRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> ScheduleResponse:
    schedule = await service.create_schedule(db, **body.model_dump())
    return ScheduleResponse.model_validate(schedule)


@router.put("/admin/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    body: ScheduleUpdateRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> ScheduleResponse:
    schedule = await service.update_schedule(db, schedule_id, body.model_dump(exclude_unset=True))
    return ScheduleResponse.model_validate(schedule)


@router.delete("/admin/schedules/{schedule_id}", status_code=204)
async def delete_schedule(
    schedule_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.delete_schedule(db, schedule_id)


@router.post("/admin/schedules/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_schedules(
    body: BulkDeleteRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> BulkDeleteResponse:
    deleted = await service.bulk_delete_schedules(db, body.schedule_ids)
    return BulkDeleteResponse(deleted=deleted)
