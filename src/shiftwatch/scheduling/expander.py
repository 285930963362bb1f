"""Expand recurring schedules into concrete shift slots.

Expansion is pure: the same schedule and window always produce the same
ordered list, and nothing is persisted. Cron fields are matched against the
wall clock of the schedule's IANA timezone and every slot is returned in UTC.

DST handling:

* An ambiguous wall time (clocks fall back) resolves to the earlier of the two
  instants, so the trigger fires once.
* A wall time inside a spring-forward gap resolves to the first instant after
  the gap, so the trigger is not lost.
* Triggers that land on the same instant are emitted once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shiftwatch.config import get_settings
from shiftwatch.errors import InvalidTimezone, UnboundedWindow
from shiftwatch.scheduling.cron import parse_cron
from shiftwatch.time_utils import as_utc


class ScheduleLike(Protocol):
    id: int
    cron_expr: str
    start_date: date | None
    end_date: date | None
    duration_minutes: int
    timezone: str


@dataclass(frozen=True)
class ShiftSlot:
    """One concrete occurrence of a schedule. Identity is (schedule_id, start_time)."""

    schedule_id: int
    start_time: datetime
    end_time: datetime

    @property
    def key(self) -> tuple[int, datetime]:
        return self.schedule_id, self.start_time


def load_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name or raise InvalidTimezone."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        msg = f"unknown timezone {name!r}"
        raise InvalidTimezone(msg) from e


def _end_of_gap(before: datetime, after: datetime, zone: ZoneInfo) -> datetime:
    """First instant in (before, after] that carries the post-transition offset."""
    target = after.astimezone(zone).utcoffset()
    low, high = int(before.timestamp()), int(after.timestamp())
    while high - low > 1:
        mid = (low + high) // 2
        if datetime.fromtimestamp(mid, timezone.utc).astimezone(zone).utcoffset() == target:
            high = mid
        else:
            low = mid
    return datetime.fromtimestamp(high, timezone.utc)


def resolve_wall_time(wall: datetime, zone: ZoneInfo) -> datetime:
    """Map a naive local wall time to a single UTC instant."""
    instant = wall.replace(tzinfo=zone, fold=0).astimezone(timezone.utc)
    if instant.astimezone(zone).replace(tzinfo=None) == wall:
        return instant
    # Nonexistent wall time: fold=0 lands after the gap, fold=1 before it.
    before = wall.replace(tzinfo=zone, fold=1).astimezone(timezone.utc)
    return _end_of_gap(before, instant, zone)


def active_window(schedule: ScheduleLike, zone: ZoneInfo) -> tuple[datetime | None, datetime | None]:
    """UTC bounds of [start_date 00:00, end_date + 1 day 00:00) in the schedule's zone."""
    low = high = None
    if schedule.start_date is not None:
        low = resolve_wall_time(datetime.combine(schedule.start_date, datetime.min.time()), zone)
    if schedule.end_date is not None:
        next_day = schedule.end_date + timedelta(days=1)
        high = resolve_wall_time(datetime.combine(next_day, datetime.min.time()), zone)
    return low, high


def expand(
    schedule: ScheduleLike,
    window_start: datetime | None,
    window_end: datetime | None,
    *,
    max_days: int | None = None,
) -> list[ShiftSlot]:
    """Slots of ``schedule`` starting in [window_start, window_end), ordered by start.

    Raises UnboundedWindow when either bound is missing or the window is longer
    than ``max_days`` (``max_expansion_days`` setting by default).
    """
    if window_start is None or window_end is None:
        msg = "slot expansion needs both window_start and window_end"
        raise UnboundedWindow(msg)

    window_start, window_end = as_utc(window_start), as_utc(window_end)
    limit = timedelta(days=max_days if max_days is not None else get_settings().max_expansion_days)
    if window_end - window_start > limit:
        msg = f"window of {window_end - window_start} exceeds the {limit.days} day limit"
        raise UnboundedWindow(msg)

    cron = parse_cron(schedule.cron_expr)
    zone = load_zone(schedule.timezone)
    if window_end <= window_start:
        return []

    low, high = window_start, window_end
    active_low, active_high = active_window(schedule, zone)
    if active_low is not None and active_low > low:
        low = active_low
    if active_high is not None and active_high < high:
        high = active_high
    if high <= low:
        return []

    duration = timedelta(minutes=schedule.duration_minutes)
    times = cron.times_of_day()
    seen: set[datetime] = set()
    slots: list[ShiftSlot] = []

    # Pad one local day each side; offsets can move a wall time across a UTC date.
    day = low.astimezone(zone).date() - timedelta(days=1)
    last_day = high.astimezone(zone).date() + timedelta(days=1)
    while day <= last_day:
        if cron.matches_date(day):
            for wall_time in times:
                start = resolve_wall_time(datetime.combine(day, wall_time), zone)
                if low <= start < high and start not in seen:
                    seen.add(start)
                    slots.append(ShiftSlot(schedule.id, start, start + duration))
        day += timedelta(days=1)

    slots.sort(key=lambda slot: slot.start_time)
    return slots


def find_slot(schedule: ScheduleLike, start_time: datetime) -> ShiftSlot | None:
    """Return the slot starting exactly at ``start_time``, or None if the expander never produces it."""
    start_time = as_utc(start_time)
    for slot in expand(schedule, start_time, start_time + timedelta(seconds=1)):
        if slot.start_time == start_time:
            return slot
    return None


def is_schedule_slot(schedule: ScheduleLike, start_time: datetime) -> bool:
    return find_slot(schedule, start_time) is not None
