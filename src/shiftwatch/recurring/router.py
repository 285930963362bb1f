"""Admin endpoints for recurring assignments."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.auth.dependencies import require_admin
from shiftwatch.database import get_session
from shiftwatch.db.models import User
from shiftwatch.recurring import service
from shiftwatch.recurring.schemas import (
    MaterializeResponse,
    RecurringAssignmentCreateRequest,
    RecurringAssignmentListResponse,
    RecurringAssignmentResponse,
    RecurringAssignmentUpdateRequest,
)

router = APIRouter(prefix="/api/v1", tags=["Recurring assignments"])


@router.get("/admin/recurring-assignments", response_model=RecurringAssignmentListResponse)
async def list_assignments(
    user_id: int | None = Query(None),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> RecurringAssignmentListResponse:
    assignments = await service.list_assignments(db, user_id)
    return RecurringAssignmentListResponse(
        assignments=[RecurringAssignmentResponse.model_validate(a) for a in assignments]
    )


@router.post(
    "/admin/recurring-assignments", response_model=RecurringAssignmentResponse, status_code=201
)
async def create_assignment(
    body: RecurringAssignmentCreateRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> RecurringAssignmentResponse:
    assignment = await service.create_assignment(db, **body.model_dump())
    return RecurringAssignmentResponse.model_validate(assignment)


@router.post("/admin/recurring-assignments/materialize", response_model=MaterializeResponse)
async def materialize(
    from_: datetime | None = Query(None, alias="from"),
    to: datetime | None = Query(None),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> MaterializeResponse:
    """Book matching slots now instead of waiting for the hourly worker run."""
    result = await service.materialize_upcoming_bookings(db, from_, to)
    return MaterializeResponse(
        window_start=result.window_start,
        window_end=result.window_end,
        created=result.created,
        skipped=result.skipped,
    )


@router.get("/admin/recurring-assignments/{assignment_id}", response_model=RecurringAssignmentResponse)
async def get_assignment(
    assignment_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> RecurringAssignmentResponse:
    return RecurringAssignmentResponse.model_validate(await service.get_assignment(db, assignment_id))


@router.put("/admin/recurring-assignments/{assignment_id}", response_model=RecurringAssignmentResponse)
async def update_assignment(
    assignment_id: int,
    body: RecurringAssignmentUpdateRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> RecurringAssignmentResponse:
    assignment = await service.update_assignment(db, assignment_id, body.model_dump(exclude_unset=True))
    return RecurringAssignmentResponse.model_validate(assignment)


@router.delete("/admin/recurring-assignments/{assignment_id}", status_code=204)
async def delete_assignment(
    assignment_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.delete_assignment(db, assignment_id)
