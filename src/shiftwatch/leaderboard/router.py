"""Leaderboard, player stats and achievement endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.auth.dependencies import get_current_user
from shiftwatch.database import get_session
from shiftwatch.db.models import Achievement, User
from shiftwatch.gamification.achievements import earned_achievements, unearned_achievements
from shiftwatch.gamification.ledger import get_points_history
from shiftwatch.leaderboard import service
from shiftwatch.leaderboard.schemas import (
    AchievementResponse,
    AvailableAchievementsResponse,
    EarnedAchievementResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    PointsHistoryEntry,
    PointsHistoryResponse,
    UserAchievementsResponse,
    UserStatsResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Leaderboard"])


def _achievement_fields(a: Achievement) -> dict:
    return {
        "slug": a.slug,
        "name": a.name,
        "description": a.description,
        "icon": a.icon,
        "shifts_threshold": a.shifts_threshold,
        "points_threshold": a.points_threshold,
        "streak_threshold": a.streak_threshold,
    }


async def _board(db: AsyncSession, metric: service.Metric, limit: int) -> LeaderboardResponse:
    rows = await service.top(db, metric, limit)
    return LeaderboardResponse(metric=metric, entries=[LeaderboardEntry(**asdict(r)) for r in rows])


# ── Leaderboards ──


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def points_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    return await _board(db, "points", limit)


@router.get("/leaderboard/shifts", response_model=LeaderboardResponse)
async def shifts_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    return await _board(db, "shifts", limit)


@router.get("/leaderboard/streaks", response_model=LeaderboardResponse)
async def streak_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    return await _board(db, "streak", limit)


# ── Current user ──


@router.get("/users/me/stats", response_model=UserStatsResponse)
async def my_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserStatsResponse:
    stats = await service.user_stats(db, user.id)
    return UserStatsResponse(**asdict(stats))


@router.get("/users/me/points/history", response_model=PointsHistoryResponse)
async def my_points_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> PointsHistoryResponse:
    entries, total = await get_points_history(db, user.id, limit, offset)
    return PointsHistoryResponse(
        entries=[
            PointsHistoryEntry(
                id=e.id,
                points_awarded=e.points_awarded,
                multiplier=e.multiplier,
                reason=e.reason,
                booking_id=e.booking_id,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/users/me/achievements", response_model=UserAchievementsResponse)
async def my_achievements(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserAchievementsResponse:
    earned = await earned_achievements(db, user.id)
    return UserAchievementsResponse(
        earned=[EarnedAchievementResponse(**_achievement_fields(a), earned_at=at) for a, at in earned]
    )


@router.get("/achievements/available", response_model=AvailableAchievementsResponse)
async def available_achievements(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AvailableAchievementsResponse:
    pending = await unearned_achievements(db, user.id)
    return AvailableAchievementsResponse(available=[AchievementResponse(**_achievement_fields(a)) for a in pending])
