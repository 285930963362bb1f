"""Domain exceptions.

Every error the scheduling and booking engine raises on purpose derives from
``ShiftwatchError``. The global error handler maps ``status_code`` to the HTTP
response, so routers do not need their own try/except blocks.
"""

from __future__ import annotations


class ShiftwatchError(ValueError):
    """Base class for expected, user-facing failures."""

    status_code = 400


class NotFound(ShiftwatchError):
    status_code = 404


class Forbidden(ShiftwatchError):
    status_code = 403


# --- Scheduling ---


class InvalidCronExpression(ShiftwatchError):
    status_code = 422


class InvalidTimezone(ShiftwatchError):
    status_code = 422


class UnboundedWindow(ShiftwatchError):
    """Raised when a slot expansion window has no end or is too long."""

    status_code = 422


class InvalidSchedule(ShiftwatchError):
    """Raised for a bad duration or date range."""

    status_code = 422


class ScheduleInUse(ShiftwatchError):
    """Raised when an edit would orphan upcoming bookings."""

    status_code = 409


# --- Booking ---


class OutOfRange(ShiftwatchError):
    """The requested start time is not a slot of the schedule."""

    status_code = 422


class SlotConflict(ShiftwatchError):
    status_code = 409


class TooLateToCancel(ShiftwatchError):
    status_code = 409


class OutsideCheckInWindow(ShiftwatchError):
    status_code = 409


# --- Reports ---


class SeverityOutOfRange(ShiftwatchError):
    status_code = 422


# --- Recurring assignments ---


class InvalidRecurringAssignment(ShiftwatchError):
    """Raised for a weekday or time slot the schedule never produces."""

    status_code = 422


class DuplicateRecurringAssignment(ShiftwatchError):
    status_code = 409
