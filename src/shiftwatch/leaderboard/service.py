"""Leaderboard read queries over the user_game_state projection.

Rank is ``1 + number of users with a strictly greater score``: tied users
share a rank and the next rank skips accordingly (1, 2, 2, 4). Top-N rows
and ``rank_of`` use the same definition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from shiftwatch.db.models import User, UserAchievement, UserGameState

Metric = Literal["points", "shifts", "streak"]

_SCORE = {
    "points": "total_points",
    "shifts": "shift_count",
    "streak": "current_streak",
}
_TIEBREAK = {
    "points": "shift_count",
    "shifts": "total_points",
    "streak": "longest_streak",
}


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    user_id: int
    name: str
    total_points: float
    shift_count: int
    current_streak: int
    longest_streak: int


def _score_column(metric: str):  # noqa: ANN202
    if metric not in _SCORE:
        msg = f"unknown leaderboard metric {metric!r}"
        raise ValueError(msg)
    return getattr(UserGameState, _SCORE[metric])


async def top(db: AsyncSession, metric: Metric = "points", limit: int = 10) -> list[LeaderboardRow]:
    """Top ``limit`` users with a positive score, best first."""
    score = _score_column(metric)
    tiebreak = getattr(UserGameState, _TIEBREAK[metric])
    other = aliased(UserGameState)
    rank = (
        select(func.count())
        .select_from(other)
        .where(getattr(other, _SCORE[metric]) > score)
        .correlate(UserGameState)
        .scalar_subquery()
        + 1
    )
    result = await db.execute(
        select(UserGameState, User.name, rank.label("rank"))
        .join(User, User.id == UserGameState.user_id)
        .where(score > 0)
        .order_by(score.desc(), tiebreak.desc(), UserGameState.user_id)
        .limit(limit)
    )
    return [
        LeaderboardRow(
            rank=int(row_rank),
            user_id=state.user_id,
            name=name,
            total_points=state.total_points,
            shift_count=state.shift_count,
            current_streak=state.current_streak,
            longest_streak=state.longest_streak,
        )
        for state, name, row_rank in result.all()
    ]


async def top_by_points(db: AsyncSession, limit: int = 10) -> list[LeaderboardRow]:
    return await top(db, "points", limit)


async def top_by_shift_count(db: AsyncSession, limit: int = 10) -> list[LeaderboardRow]:
    return await top(db, "shifts", limit)


async def top_by_streak(db: AsyncSession, limit: int = 10) -> list[LeaderboardRow]:
    return await top(db, "streak", limit)


async def rank_of(db: AsyncSession, user_id: int, metric: Metric = "points") -> int:
    """Rank of ``user_id``; users without a game state rank as a zero score."""
    score = _score_column(metric)
    own = (await db.execute(select(score).where(UserGameState.user_id == user_id))).scalar_one_or_none()
    ahead = await db.execute(select(func.count()).select_from(UserGameState).where(score > (own or 0)))
    return int(ahead.scalar_one()) + 1


@dataclass(frozen=True)
class UserStats:
    user_id: int
    total_points: float
    shift_count: int
    current_streak: int
    longest_streak: int
    rank: int
    achievements_earned: int


async def user_stats(db: AsyncSession, user_id: int) -> UserStats:
    state = await db.get(UserGameState, user_id)
    earned = await db.execute(
        select(func.count()).select_from(UserAchievement).where(UserAchievement.user_id == user_id)
    )
    return UserStats(
        user_id=user_id,
        total_points=state.total_points if state else 0.0,
        shift_count=state.shift_count if state else 0,
        current_streak=state.current_streak if state else 0,
        longest_streak=state.longest_streak if state else 0,
        rank=await rank_of(db, user_id),
        achievements_earned=int(earned.scalar_one()),
    )

