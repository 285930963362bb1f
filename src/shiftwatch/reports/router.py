"""Shift report endpoint."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.auth.dependencies import get_current_user
from shiftwatch.database import get_session
from shiftwatch.db.models import User
from shiftwatch.reports.service import file_report

router = APIRouter(prefix="/api/v1", tags=["Reports"])


class ReportCreateRequest(BaseModel):
    # Range is enforced by the service so the error carries the domain code
    severity: int = 0
    message: str = Field("", max_length=5000)


class ReportResponse(BaseModel):
    id: int
    booking_id: int
    severity: int
    created_at: datetime
    points_awarded: float
    achievements_unlocked: list[str]


@router.post("/bookings/{booking_id}/report", response_model=ReportResponse, status_code=201)
async def create_report(
    booking_id: int,
    body: ReportCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ReportResponse:
    report, result = await file_report(db, booking_id, user, body.severity, body.message)
    return ReportResponse(
        id=report.id,
        booking_id=report.booking_id,
        severity=report.severity,
        created_at=report.created_at,
        points_awarded=result.points,
        achievements_unlocked=[a.slug for a in result.achievements],
    )
