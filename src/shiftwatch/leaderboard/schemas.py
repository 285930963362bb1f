"""Pydantic response models for leaderboard and player stats."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    name: str
    total_points: float
    shift_count: int
    current_streak: int
    longest_streak: int


class LeaderboardResponse(BaseModel):
    metric: str
    entries: list[LeaderboardEntry]


class UserStatsResponse(BaseModel):
    user_id: int
    total_points: float
    shift_count: int
    current_streak: int
    longest_streak: int
    rank: int
    achievements_earned: int


# --- Points history ---


class PointsHistoryEntry(BaseModel):
    id: int
    points_awarded: int
    multiplier: float
    reason: str
    booking_id: int | None
    created_at: datetime


class PointsHistoryResponse(BaseModel):
    entries: list[PointsHistoryEntry]
    total: int
    limit: int
    offset: int


# --- Achievements ---


class AchievementResponse(BaseModel):
    slug: str
    name: str
    description: str
    icon: str | None
    shifts_threshold: int | None
    points_threshold: int | None
    streak_threshold: int | None


class EarnedAchievementResponse(AchievementResponse):
    earned_at: datetime


class UserAchievementsResponse(BaseModel):
    earned: list[EarnedAchievementResponse]


class AvailableAchievementsResponse(BaseModel):
    available: list[AchievementResponse]
