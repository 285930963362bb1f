"""Participation streaks.

A streak counts completed shifts where each one falls within
``streak_period_days`` of the previous. A longer gap restarts the count at 1.
``longest_streak`` is a high-water mark and ``last_activity_date`` never moves
backwards, so a report filed late for an earlier shift cannot rewind it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from shiftwatch.db.models import UserGameState


@dataclass(frozen=True)
class StreakState:
    current: int
    longest: int
    last_activity: date | None


def advance_streak(state: StreakState, activity: date, period_days: int = 7) -> StreakState:
    """Return the streak after a shift completed on local date ``activity``."""
    if state.last_activity is None or (activity - state.last_activity).days > period_days:
        current = 1
    else:
        current = state.current + 1

    last = activity if state.last_activity is None else max(state.last_activity, activity)
    return StreakState(current=current, longest=max(state.longest, current), last_activity=last)


def record_completion(game_state: UserGameState, activity: date, period_days: int = 7) -> StreakState:
    """Apply a completion to a locked game-state row in place."""
    new = advance_streak(
        StreakState(game_state.current_streak, game_state.longest_streak, game_state.last_activity_date),
        activity,
        period_days,
    )
    game_state.current_streak = new.current
    game_state.longest_streak = new.longest
    game_state.last_activity_date = new.last_activity
    return new
