"""Points rules.

Pure functions that decide which ledger entries a lifecycle event earns. They
never touch the database; ``GamificationEngine`` persists what they return.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from shiftwatch.config import Settings, get_settings
from shiftwatch.time_utils import as_utc


class PointReason(str, enum.Enum):
    SHIFT_CHECKIN = "shift_checkin"
    EARLY_CHECKIN = "early_checkin"
    SHIFT_COMPLETION = "shift_completion"
    SERIOUS_INCIDENT = "serious_incident"
    WEEKEND_BONUS = "weekend_bonus"
    LATE_NIGHT_BONUS = "late_night_bonus"
    FREQUENCY_BONUS = "frequency_bonus"
    SHIFT_DROPOUT = "shift_dropout"


POINTS: dict[PointReason, int] = {
    PointReason.SHIFT_CHECKIN: 10,
    PointReason.EARLY_CHECKIN: 3,
    PointReason.SHIFT_COMPLETION: 15,
    PointReason.SERIOUS_INCIDENT: 10,
    PointReason.WEEKEND_BONUS: 5,
    PointReason.LATE_NIGHT_BONUS: 3,
    PointReason.FREQUENCY_BONUS: 10,
    PointReason.SHIFT_DROPOUT: -10,
}

# Highest report severity tier
SERIOUS_SEVERITY = 2


@dataclass(frozen=True)
class PointAward:
    reason: PointReason
    points: int


def _award(reason: PointReason) -> PointAward:
    return PointAward(reason, POINTS[reason])


def is_weekend(local_start: datetime) -> bool:
    return local_start.weekday() >= 5


def is_late_night(local_start: datetime, start_hour: int = 22, end_hour: int = 5) -> bool:
    """Whether the local start hour falls in [start_hour, end_hour), wrapping past midnight."""
    hour = local_start.hour
    if start_hour <= end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour


def checkin_awards(shift_start: datetime, checked_in_at: datetime, settings: Settings | None = None) -> list[PointAward]:
    settings = settings or get_settings()
    awards = [_award(PointReason.SHIFT_CHECKIN)]
    if shift_start - checked_in_at >= timedelta(minutes=settings.early_checkin_minutes):
        awards.append(_award(PointReason.EARLY_CHECKIN))
    return awards


def completion_awards(
    local_start: datetime,
    severity: int,
    completions_in_window: int,
    settings: Settings | None = None,
) -> list[PointAward]:
    """Awards for a completed shift.

    ``local_start`` is the shift start in the schedule's timezone and
    ``completions_in_window`` counts this completion too.
    """
    settings = settings or get_settings()
    awards = [_award(PointReason.SHIFT_COMPLETION)]
    if severity >= SERIOUS_SEVERITY:
        awards.append(_award(PointReason.SERIOUS_INCIDENT))
    if is_weekend(local_start):
        awards.append(_award(PointReason.WEEKEND_BONUS))
    if is_late_night(local_start, settings.late_night_start_hour, settings.late_night_end_hour):
        awards.append(_award(PointReason.LATE_NIGHT_BONUS))
    if completions_in_window >= settings.frequency_threshold:
        awards.append(_award(PointReason.FREQUENCY_BONUS))
    return awards


def cancellation_awards() -> list[PointAward]:
    return [_award(PointReason.SHIFT_DROPOUT)]


def current_multiplier(at: datetime, settings: Settings | None = None) -> float:
    """Multiplier of the promotional window covering ``at``, 1.0 outside any promotion."""
    settings = settings or get_settings()
    if settings.promo_starts_at is None or settings.promo_ends_at is None:
        return 1.0
    if as_utc(settings.promo_starts_at) <= as_utc(at) < as_utc(settings.promo_ends_at):
        return settings.promo_multiplier
    return 1.0
