"""Pydantic models for booking endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class BookingCreateRequest(BaseModel):
    schedule_id: int
    start_time: datetime
    buddy_name: str | None = Field(None, max_length=128)
    buddy_phone: str | None = Field(None, max_length=32)


class AdminAssignRequest(BaseModel):
    user_id: int
    schedule_id: int
    start_time: datetime
    buddy_name: str | None = Field(None, max_length=128)


class ReassignRequest(BaseModel):
    user_id: int


class BookingResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    user_id: int
    schedule_id: int
    shift_start: datetime
    shift_end: datetime
    buddy_user_id: int | None = None
    buddy_name: str | None = None
    checked_in_at: datetime | None = None
    created_at: datetime


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
