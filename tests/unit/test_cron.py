"""Unit tests for cron expression parsing and day matching."""

from __future__ import annotations

from datetime import date, time

import pytest

from shiftwatch.errors import InvalidCronExpression
from shiftwatch.scheduling.cron import parse_cron


class TestFieldParsing:
    def test_single_values(self):
        cron = parse_cron("30 18 * * *")
        assert cron.minutes == {30}
        assert cron.hours == {18}
        assert cron.days_of_month == frozenset(range(1, 32))
        assert cron.months == frozenset(range(1, 13))

    def test_lists_ranges_and_steps(self):
        cron = parse_cron("0,15,45 8-10 */10 1-6/2 *")
        assert cron.minutes == {0, 15, 45}
        assert cron.hours == {8, 9, 10}
        assert cron.days_of_month == {1, 11, 21, 31}
        assert cron.months == {1, 3, 5}

    def test_value_with_step_runs_to_field_max(self):
        assert parse_cron("50/5 * * * *").minutes == {50, 55}

    def test_month_and_weekday_names(self):
        cron = parse_cron("0 20 * jan,DEC mon-fri")
        assert cron.months == {1, 12}
        assert cron.days_of_week == {1, 2, 3, 4, 5}

    def test_seven_is_sunday(self):
        assert parse_cron("0 0 * * 7").days_of_week == {0}
        assert parse_cron("0 0 * * 5-7").days_of_week == {5, 6, 0}

    def test_question_mark_is_wildcard(self):
        cron = parse_cron("0 6 ? * MON")
        assert cron.days_of_month == frozenset(range(1, 32))
        assert cron.dom_restricted is False

    @pytest.mark.parametrize(
        ("macro", "expected"),
        [("@daily", "0 0 * * *"), ("@weekly", "0 0 * * 0"), ("@hourly", "0 * * * *"), ("@YEARLY", "0 0 1 1 *")],
    )
    def test_macros(self, macro, expected):
        parsed, plain = parse_cron(macro), parse_cron(expected)
        assert (parsed.minutes, parsed.hours, parsed.days_of_month, parsed.months, parsed.days_of_week) == (
            plain.minutes, plain.hours, plain.days_of_month, plain.months, plain.days_of_week,
        )

    def test_times_of_day_ascending(self):
        assert parse_cron("45,0 22,6 * * *").times_of_day() == [time(6, 0), time(6, 45), time(22, 0), time(22, 45)]


class TestInvalidExpressions:
    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "   ",
            "0 18 * *",
            "0 18 * * * *",
            "60 18 * * *",
            "0 24 * * *",
            "0 0 0 * *",
            "0 0 * 13 *",
            "0 0 * * 8",
            "*/0 * * * *",
            "0 10-8 * * *",
            "0 1,,2 * * *",
            "0 x * * *",
            "0 0 * * FUNDAY",
        ],
    )
    def test_rejected(self, expression):
        with pytest.raises(InvalidCronExpression):
            parse_cron(expression)

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_cron("not a cron")


class TestDayMatching:
    def test_weekday_only(self):
        cron = parse_cron("0 18 * * SAT,SUN")
        assert cron.matches_date(date(2026, 11, 7))  # Saturday
        assert cron.matches_date(date(2026, 11, 8))  # Sunday
        assert not cron.matches_date(date(2026, 11, 9))

    def test_day_of_month_or_weekday_when_both_restricted(self):
        cron = parse_cron("0 0 1 * MON")
        assert cron.matches_date(date(2026, 11, 1))  # the 1st, a Sunday
        assert cron.matches_date(date(2026, 11, 2))  # a Monday
        assert not cron.matches_date(date(2026, 11, 3))

    def test_star_step_day_of_month_combines_with_and(self):
        cron = parse_cron("0 0 */2 * MON")
        assert not cron.matches_date(date(2026, 11, 2))  # Monday, even day
        assert cron.matches_date(date(2026, 11, 9))  # Monday, odd day
        assert not cron.matches_date(date(2026, 11, 11))  # odd day, Wednesday

    def test_month_filter(self):
        cron = parse_cron("0 0 * DEC *")
        assert cron.matches_date(date(2026, 12, 24))
        assert not cron.matches_date(date(2026, 11, 24))

    def test_parse_is_cached(self):
        assert parse_cron("0 18 * * *") is parse_cron("0 18 * * *")
