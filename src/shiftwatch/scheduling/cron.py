"""Five-field cron expressions.

Supported syntax per field: ``*``, ``?``, ``N``, ``A-B``, ``*/S``, ``A-B/S``,
``A/S`` and comma lists of those. Month and weekday fields accept three-letter
English names. Weekday ``7`` is an alias for Sunday. The ``@hourly``,
``@daily``/``@midnight``, ``@weekly``, ``@monthly`` and ``@yearly``/``@annually``
macros are expanded before parsing.

When both day-of-month and day-of-week are restricted, a day matches if either
field matches (classic cron behaviour). A field written with a leading ``*``
counts as unrestricted for this rule.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from functools import lru_cache

from shiftwatch.errors import InvalidCronExpression

MACROS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

MONTH_NAMES = {
    name: number
    for number, name in enumerate(
        ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"], start=1
    )
}
WEEKDAY_NAMES = {name: number for number, name in enumerate(["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"])}


@dataclass(frozen=True)
class CronExpression:
    """Parsed expression. Weekdays use cron numbering (0 = Sunday)."""

    source: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days_of_month: frozenset[int]
    months: frozenset[int]
    days_of_week: frozenset[int]
    dom_restricted: bool
    dow_restricted: bool

    def matches_date(self, day: date) -> bool:
        """Whether ``day`` (a local calendar date) is a firing day."""
        if day.month not in self.months:
            return False
        dom_ok = day.day in self.days_of_month
        dow_ok = day.isoweekday() % 7 in self.days_of_week
        if self.dom_restricted and self.dow_restricted:
            return dom_ok or dow_ok
        return dom_ok and dow_ok

    def times_of_day(self) -> list[time]:
        """All wall-clock firing times in a day, ascending."""
        return [time(h, m) for h in sorted(self.hours) for m in sorted(self.minutes)]


def _parse_value(token: str, names: dict[str, int] | None) -> int:
    if names and token.upper() in names:
        return names[token.upper()]
    if not (token.isascii() and token.isdigit()):
        msg = f"invalid value {token!r}"
        raise InvalidCronExpression(msg)
    return int(token)


def _parse_field(text: str, low: int, high: int, names: dict[str, int] | None = None) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        if not part:
            msg = f"empty list item in {text!r}"
            raise InvalidCronExpression(msg)

        step = 1
        has_step = "/" in part
        if has_step:
            span, _, step_text = part.partition("/")
            if not (step_text.isascii() and step_text.isdigit()) or int(step_text) == 0:
                msg = f"invalid step in {part!r}"
                raise InvalidCronExpression(msg)
            step = int(step_text)
        else:
            span = part

        if span in ("*", "?"):
            start, end = low, high
        elif "-" in span:
            first, _, last = span.partition("-")
            start, end = _parse_value(first, names), _parse_value(last, names)
        else:
            start = _parse_value(span, names)
            end = high if has_step else start

        if start < low or end > high or start > end:
            msg = f"{part!r} is outside {low}-{high}"
            raise InvalidCronExpression(msg)
        values.update(range(start, end + 1, step))
    return frozenset(values)


@lru_cache(maxsize=256)
def parse_cron(expression: str) -> CronExpression:
    """Parse a cron expression, raising InvalidCronExpression on any error."""
    if not isinstance(expression, str) or not expression.strip():
        msg = "cron expression is empty"
        raise InvalidCronExpression(msg)

    text = MACROS.get(expression.strip().lower(), expression.strip())
    fields = text.split()
    if len(fields) != 5:
        msg = f"expected 5 fields, got {len(fields)}: {expression!r}"
        raise InvalidCronExpression(msg)

    minute, hour, dom, month, dow = fields
    try:
        weekdays = _parse_field(dow, 0, 7, WEEKDAY_NAMES)
        return CronExpression(
            source=expression,
            minutes=_parse_field(minute, 0, 59),
            hours=_parse_field(hour, 0, 23),
            days_of_month=_parse_field(dom, 1, 31),
            months=_parse_field(month, 1, 12, MONTH_NAMES),
            days_of_week=frozenset(0 if d == 7 else d for d in weekdays),
            dom_restricted=not dom.startswith(("*", "?")),
            dow_restricted=not dow.startswith(("*", "?")),
        )
    except InvalidCronExpression as e:
        msg = f"{expression!r}: {e}"
        raise InvalidCronExpression(msg) from None
