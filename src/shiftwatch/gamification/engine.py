"""Gamification pipeline driven by booking lifecycle events.

Each handler runs inside the caller's transaction: it locks the user's game
state, appends ledger rows, updates streak and shift count, evaluates
achievements, and stages ACHIEVEMENT_UNLOCKED outbox messages. The engine only
flushes; the booking or report service commits everything at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.config import Settings, get_settings
from shiftwatch.db.models import Achievement, Booking, PointsHistory, Report, Schedule, User, UserGameState
from shiftwatch.gamification import rules
from shiftwatch.gamification.achievements import evaluate_achievements
from shiftwatch.gamification.ledger import append_awards, count_completions_since, get_or_create_game_state
from shiftwatch.gamification.streak_service import record_completion
from shiftwatch.outbox.service import MessageType, enqueue_for_user
from shiftwatch.scheduling.expander import load_zone

logger = logging.getLogger(__name__)


@dataclass
class EngineResult:
    entries: list[PointsHistory] = field(default_factory=list)
    achievements: list[Achievement] = field(default_factory=list)

    @property
    def points(self) -> float:
        return sum(e.points_awarded * e.multiplier for e in self.entries)


class GamificationEngine:
    """Apply points, streak and achievement rules for one lifecycle event at a time."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def on_checked_in(self, booking: Booking) -> EngineResult:
        at = booking.checked_in_at or datetime.now(timezone.utc)
        awards = rules.checkin_awards(booking.shift_start, at, self.settings)
        state = await get_or_create_game_state(self.db, booking.user_id, for_update=True)
        return await self._apply(state, awards, booking.id, at)

    async def on_completed(self, booking: Booking, schedule: Schedule, report: Report) -> EngineResult:
        """Score a completed shift. Bookings that were never checked in earn nothing."""
        if booking.checked_in_at is None:
            logger.info("Booking %s completed without check-in, no points", booking.id)
            return EngineResult()

        at = report.created_at or datetime.now(timezone.utc)
        local_start = booking.shift_start.astimezone(load_zone(schedule.timezone))
        state = await get_or_create_game_state(self.db, booking.user_id, for_update=True)

        since = at - timedelta(days=self.settings.frequency_window_days)
        completions = await count_completions_since(self.db, booking.user_id, since) + 1
        awards = rules.completion_awards(local_start, report.severity, completions, self.settings)

        state.shift_count += 1
        record_completion(state, local_start.date(), self.settings.streak_period_days)
        return await self._apply(state, awards, booking.id, at)

    async def on_cancelled(self, booking: Booking, at: datetime | None = None) -> EngineResult:
        at = at or datetime.now(timezone.utc)
        state = await get_or_create_game_state(self.db, booking.user_id, for_update=True)
        return await self._apply(state, rules.cancellation_awards(), booking.id, at)

    async def _apply(
        self,
        state: UserGameState,
        awards: list[rules.PointAward],
        booking_id: int | None,
        at: datetime,
    ) -> EngineResult:
        multiplier = rules.current_multiplier(at, self.settings)
        entries = append_awards(self.db, state, awards, booking_id=booking_id, multiplier=multiplier, at=at)
        state.updated_at = at
        await self.db.flush()

        unlocked = await evaluate_achievements(self.db, state, at)
        if unlocked:
            user = await self.db.get(User, state.user_id)
            for achievement in unlocked:
                enqueue_for_user(
                    self.db,
                    user,
                    MessageType.ACHIEVEMENT_UNLOCKED,
                    {"achievement": achievement.slug, "name": achievement.name},
                )
            await self.db.flush()

        logger.info(
            "User %s: %s (%+.0f points, total %.0f)",
            state.user_id, ", ".join(a.reason.value for a in awards), sum(a.points for a in awards) * multiplier,
            state.total_points,
        )
        return EngineResult(entries=entries, achievements=unlocked)
