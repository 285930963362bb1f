"""Unit tests for achievement rule construction."""

from __future__ import annotations

from shiftwatch.db.models import Achievement, UserGameState
from shiftwatch.gamification.achievements import AllOf, PointsRule, ShiftCountRule, StreakRule, rule_for
from shiftwatch.gamification.seed import ACHIEVEMENT_SEED_DATA


def _state(points: float = 0.0, shifts: int = 0, current: int = 0, longest: int = 0) -> UserGameState:
    return UserGameState(
        user_id=1, total_points=points, shift_count=shifts, current_streak=current, longest_streak=longest
    )


class TestRuleFor:
    def test_single_threshold(self):
        assert rule_for(Achievement(slug="a", name="A", shifts_threshold=5)) == ShiftCountRule(5)
        assert rule_for(Achievement(slug="b", name="B", points_threshold=100)) == PointsRule(100)
        assert rule_for(Achievement(slug="c", name="C", streak_threshold=4)) == StreakRule(4)

    def test_multiple_thresholds_become_all_of(self):
        rule = rule_for(Achievement(slug="d", name="D", shifts_threshold=10, streak_threshold=4))
        assert rule == AllOf((ShiftCountRule(10), StreakRule(4)))

    def test_no_thresholds(self):
        assert rule_for(Achievement(slug="e", name="E")) is None


class TestRules:
    def test_shift_count(self):
        assert ShiftCountRule(1).is_met(_state(shifts=1))
        assert not ShiftCountRule(2).is_met(_state(shifts=1))

    def test_points_compare_weighted_total(self):
        assert PointsRule(100).is_met(_state(points=100.0))
        assert not PointsRule(100).is_met(_state(points=99.5))

    def test_streak_uses_longest(self):
        """A broken streak does not un-earn the milestone."""
        assert StreakRule(4).is_met(_state(current=1, longest=4))
        assert not StreakRule(4).is_met(_state(current=3, longest=3))

    def test_all_of_needs_every_condition(self):
        rule = AllOf((ShiftCountRule(10), StreakRule(4)))
        assert rule.is_met(_state(shifts=10, longest=4))
        assert not rule.is_met(_state(shifts=10, longest=3))
        assert not rule.is_met(_state(shifts=9, longest=4))


class TestCatalogue:
    def test_every_seeded_achievement_has_a_rule(self):
        for data in ACHIEVEMENT_SEED_DATA:
            assert rule_for(Achievement(**data)) is not None, data["slug"]

    def test_slugs_unique(self):
        slugs = [d["slug"] for d in ACHIEVEMENT_SEED_DATA]
        assert len(slugs) == len(set(slugs))
