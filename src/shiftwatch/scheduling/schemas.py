"""Pydantic models for schedule and slot endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from shiftwatch.scheduling.availability import AnnotatedSlot


# --- Schedules ---


class ScheduleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    cron_expr: str = Field(..., min_length=1, max_length=128)
    timezone: str = Field("UTC", min_length=1, max_length=64)
    duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    start_date: date | None = None
    end_date: date | None = None


class ScheduleUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    cron_expr: str | None = Field(None, min_length=1, max_length=128)
    timezone: str | None = Field(None, min_length=1, max_length=64)
    duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    start_date: date | None = None
    end_date: date | None = None


class ScheduleResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    cron_expr: str
    timezone: str
    duration_minutes: int
    start_date: date | None
    end_date: date | None
    created_at: datetime


class ScheduleListResponse(BaseModel):
    schedules: list[ScheduleResponse]


class BulkDeleteRequest(BaseModel):
    schedule_ids: list[int] = Field(..., min_length=1, max_length=500)


class BulkDeleteResponse(BaseModel):
    deleted: int


# --- Slots ---


class SlotResponse(BaseModel):
    schedule_id: int
    schedule_name: str | None
    start_time: datetime
    end_time: datetime
    timezone: str | None
    is_booked: bool
    booking_id: int | None = None
    user_name: str | None = None
    buddy_name: str | None = None

    @classmethod
    def from_annotated(cls, item: AnnotatedSlot, *, include_booker: bool = True) -> SlotResponse:
        booking = item.booking
        return cls(
            schedule_id=item.slot.schedule_id,
            schedule_name=item.schedule_name,
            start_time=item.slot.start_time,
            end_time=item.slot.end_time,
            timezone=item.timezone,
            is_booked=item.is_booked,
            booking_id=booking.id if booking else None,
            user_name=item.user_name if include_booker else None,
            buddy_name=booking.buddy_name if booking and include_booker else None,
        )


class SlotListResponse(BaseModel):
    slots: list[SlotResponse]
    total: int
