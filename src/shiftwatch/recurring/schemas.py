"""Pydantic models for recurring assignment endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RecurringAssignmentCreateRequest(BaseModel):
    user_id: int
    schedule_id: int
    day_of_week: int = Field(..., ge=0, le=6)
    time_slot: str = Field(..., pattern=r"^\d{2}:\d{2}-\d{2}:\d{2}$")
    buddy_name: str | None = Field(None, max_length=128)
    description: str | None = Field(None, max_length=500)


class RecurringAssignmentUpdateRequest(BaseModel):
    user_id: int | None = None
    schedule_id: int | None = None
    day_of_week: int | None = Field(None, ge=0, le=6)
    time_slot: str | None = Field(None, pattern=r"^\d{2}:\d{2}-\d{2}:\d{2}$")
    buddy_name: str | None = Field(None, max_length=128)
    description: str | None = Field(None, max_length=500)


class RecurringAssignmentResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    user_id: int
    schedule_id: int
    day_of_week: int
    time_slot: str
    buddy_name: str | None = None
    description: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class RecurringAssignmentListResponse(BaseModel):
    assignments: list[RecurringAssignmentResponse]


class MaterializeResponse(BaseModel):
    window_start: datetime
    window_end: datetime
    created: int
    skipped: int
