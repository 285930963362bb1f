"""Unit tests for streak progression."""

from __future__ import annotations

from datetime import date

from shiftwatch.db.models import UserGameState
from shiftwatch.gamification.streak_service import StreakState, advance_streak, record_completion

EMPTY = StreakState(current=0, longest=0, last_activity=None)


class TestAdvanceStreak:
    def test_first_completion_starts_streak(self):
        assert advance_streak(EMPTY, date(2026, 11, 2)) == StreakState(1, 1, date(2026, 11, 2))

    def test_within_period_extends(self):
        state = StreakState(3, 3, date(2026, 11, 2))
        assert advance_streak(state, date(2026, 11, 9)) == StreakState(4, 4, date(2026, 11, 9))

    def test_same_day_extends(self):
        state = StreakState(1, 1, date(2026, 11, 2))
        assert advance_streak(state, date(2026, 11, 2)).current == 2

    def test_gap_resets_but_keeps_longest(self):
        state = StreakState(5, 5, date(2026, 11, 2))
        assert advance_streak(state, date(2026, 11, 10)) == StreakState(1, 5, date(2026, 11, 10))

    def test_late_report_for_earlier_shift_does_not_rewind(self):
        state = StreakState(2, 2, date(2026, 11, 10))
        new = advance_streak(state, date(2026, 11, 6))
        assert new.current == 3
        assert new.last_activity == date(2026, 11, 10)

    def test_custom_period(self):
        state = StreakState(1, 1, date(2026, 11, 1))
        assert advance_streak(state, date(2026, 11, 3), period_days=1).current == 1
        assert advance_streak(state, date(2026, 11, 2), period_days=1).current == 2

    def test_longest_is_high_water_mark(self):
        state = EMPTY
        for day in (1, 3, 5, 20, 22):
            state = advance_streak(state, date(2026, 11, day))
        assert state.current == 2
        assert state.longest == 3


class TestRecordCompletion:
    def test_updates_row_in_place(self):
        row = UserGameState(user_id=1, current_streak=1, longest_streak=4, last_activity_date=date(2026, 11, 2))
        new = record_completion(row, date(2026, 11, 6))
        assert (row.current_streak, row.longest_streak, row.last_activity_date) == (2, 4, date(2026, 11, 6))
        assert new.current == 2
