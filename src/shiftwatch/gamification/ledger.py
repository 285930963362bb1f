"""Points ledger and the per-user game-state projection.

The ledger (``points_history``) is the source of truth. ``user_game_state``
is only ever changed together with a ledger append, in the same transaction,
and ``reconcile_game_states`` re-derives it to detect drift.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.db.dialect import upsert_insert
from shiftwatch.db.models import PointsHistory, UserGameState
from shiftwatch.gamification.rules import PointAward, PointReason

logger = logging.getLogger(__name__)

# Float sums of integer points only drift through the multiplier.
TOLERANCE = 1e-6


async def get_or_create_game_state(db: AsyncSession, user_id: int, *, for_update: bool = False) -> UserGameState:
    """Return the user's projection row, creating it if needed.

    With ``for_update`` the row is locked until the transaction ends, which
    serialises concurrent lifecycle events for the same user.
    """
    stmt = upsert_insert(db, UserGameState).values(user_id=user_id, updated_at=datetime.now(timezone.utc))
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id"]))

    query = select(UserGameState).where(UserGameState.user_id == user_id).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    return (await db.execute(query)).scalar_one()


def append_awards(
    db: AsyncSession,
    state: UserGameState,
    awards: Sequence[PointAward],
    *,
    booking_id: int | None,
    multiplier: float,
    at: datetime,
) -> list[PointsHistory]:
    """Stage one ledger row per award and move the projection by the same amount."""
    entries = []
    for award in awards:
        entry = PointsHistory(
            user_id=state.user_id,
            booking_id=booking_id,
            points_awarded=award.points,
            reason=award.reason.value,
            multiplier=multiplier,
            created_at=at,
        )
        db.add(entry)
        entries.append(entry)
        state.total_points += award.points * multiplier
    return entries


async def count_completions_since(db: AsyncSession, user_id: int, since: datetime) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(PointsHistory)
        .where(
            PointsHistory.user_id == user_id,
            PointsHistory.reason == PointReason.SHIFT_COMPLETION.value,
            PointsHistory.created_at >= since,
        )
    )
    return int(result.scalar_one())


async def ledger_total(db: AsyncSession, user_id: int) -> float:
    result = await db.execute(
        select(func.coalesce(func.sum(PointsHistory.points_awarded * PointsHistory.multiplier), 0.0)).where(
            PointsHistory.user_id == user_id
        )
    )
    return float(result.scalar_one())


async def get_points_history(
    db: AsyncSession, user_id: int, limit: int = 50, offset: int = 0
) -> tuple[list[PointsHistory], int]:
    """A page of ledger rows, newest first, plus the total row count."""
    total = (
        await db.execute(select(func.count()).select_from(PointsHistory).where(PointsHistory.user_id == user_id))
    ).scalar_one()
    result = await db.execute(
        select(PointsHistory)
        .where(PointsHistory.user_id == user_id)
        .order_by(PointsHistory.created_at.desc(), PointsHistory.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total)


async def reconcile_game_states(db: AsyncSession, lookback: timedelta | None = None) -> int:
    """Compare every projection with its ledger and log each divergence.

    Nothing is corrected: a mismatch means a write path bypassed the ledger and
    needs investigating. ``lookback`` limits the check to recently updated rows.
    Returns the number of diverging users.
    """
    sums = (
        select(
            PointsHistory.user_id.label("user_id"),
            func.sum(PointsHistory.points_awarded * PointsHistory.multiplier).label("ledger_points"),
            func.sum(case((PointsHistory.reason == PointReason.SHIFT_COMPLETION.value, 1), else_=0)).label(
                "ledger_shifts"
            ),
        )
        .group_by(PointsHistory.user_id)
        .subquery()
    )
    query = select(
        UserGameState.user_id,
        UserGameState.total_points,
        UserGameState.shift_count,
        func.coalesce(sums.c.ledger_points, 0.0),
        func.coalesce(sums.c.ledger_shifts, 0),
    ).outerjoin(sums, sums.c.user_id == UserGameState.user_id)
    if lookback is not None:
        query = query.where(UserGameState.updated_at >= datetime.now(timezone.utc) - lookback)

    diverged = 0
    for user_id, total_points, shift_count, ledger_points, ledger_shifts in (await db.execute(query)).all():
        if abs(float(total_points) - float(ledger_points)) > TOLERANCE or int(shift_count) != int(ledger_shifts):
            diverged += 1
            logger.error(
                "Game state diverges from ledger for user %s: total_points=%s ledger=%s shift_count=%s ledger=%s",
                user_id, total_points, ledger_points, shift_count, ledger_shifts,
            )
    if diverged:
        logger.error("Ledger reconciliation found %d diverging users", diverged)
    else:
        logger.info("Ledger reconciliation clean")
    return diverged
