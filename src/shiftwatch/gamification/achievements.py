"""Achievement rules and evaluation.

An achievement row carries up to three thresholds. ``rule_for`` turns them into
one of a closed set of rule types; several thresholds become ``AllOf``.
Awards are insert-if-absent, so evaluating the same state twice is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.db.dialect import upsert_insert
from shiftwatch.db.models import Achievement, UserAchievement, UserGameState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShiftCountRule:
    threshold: int

    def is_met(self, state: UserGameState) -> bool:
        return state.shift_count >= self.threshold


@dataclass(frozen=True)
class PointsRule:
    threshold: int

    def is_met(self, state: UserGameState) -> bool:
        return state.total_points >= self.threshold


@dataclass(frozen=True)
class StreakRule:
    threshold: int

    def is_met(self, state: UserGameState) -> bool:
        # longest_streak never decreases, so an earned streak stays earned
        return state.longest_streak >= self.threshold


@dataclass(frozen=True)
class AllOf:
    rules: tuple[ShiftCountRule | PointsRule | StreakRule, ...]

    def is_met(self, state: UserGameState) -> bool:
        return all(rule.is_met(state) for rule in self.rules)


AchievementRule = Union[ShiftCountRule, PointsRule, StreakRule, AllOf]


def rule_for(achievement: Achievement) -> AchievementRule | None:
    """Build the rule for a catalogue row; None when it has no thresholds."""
    rules: list[ShiftCountRule | PointsRule | StreakRule] = []
    if achievement.shifts_threshold is not None:
        rules.append(ShiftCountRule(achievement.shifts_threshold))
    if achievement.points_threshold is not None:
        rules.append(PointsRule(achievement.points_threshold))
    if achievement.streak_threshold is not None:
        rules.append(StreakRule(achievement.streak_threshold))
    if not rules:
        return None
    if len(rules) == 1:
        return rules[0]
    return AllOf(tuple(rules))


async def unearned_achievements(db: AsyncSession, user_id: int) -> list[Achievement]:
    earned = select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    result = await db.execute(
        select(Achievement).where(Achievement.id.not_in(earned)).order_by(Achievement.sort_order, Achievement.id)
    )
    return list(result.scalars().all())


async def earned_achievements(db: AsyncSession, user_id: int) -> list[tuple[Achievement, datetime]]:
    result = await db.execute(
        select(Achievement, UserAchievement.earned_at)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.earned_at, Achievement.sort_order)
    )
    return [(achievement, earned_at) for achievement, earned_at in result.all()]


async def award_achievement(db: AsyncSession, user_id: int, achievement_id: int, at: datetime | None = None) -> bool:
    """Insert-if-absent. Returns True only when this call created the award."""
    stmt = upsert_insert(db, UserAchievement).values(
        user_id=user_id,
        achievement_id=achievement_id,
        earned_at=at or datetime.now(timezone.utc),
    )
    result = await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "achievement_id"]))
    return result.rowcount == 1


async def evaluate_achievements(db: AsyncSession, state: UserGameState, at: datetime | None = None) -> list[Achievement]:
    """Award every unearned achievement whose rule ``state`` now satisfies."""
    awarded = []
    for achievement in await unearned_achievements(db, state.user_id):
        rule = rule_for(achievement)
        if rule is None or not rule.is_met(state):
            continue
        if await award_achievement(db, state.user_id, achievement.id, at):
            logger.info("User %s earned achievement %s", state.user_id, achievement.slug)
            awarded.append(achievement)
    return awarded
