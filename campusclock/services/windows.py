"""
Check-in window evaluation for scheduled lessons.

This is the only place the window arithmetic lives: the schedule listing,
the check-in endpoint and the absence reconciler all call into it so they can
never disagree about eligibility.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo

DEFAULT_CHECK_IN_WINDOW = 15
DEFAULT_LATE_THRESHOLD = 10

NO_LESSON_PERIOD = "No lesson period found"
WINDOW_CLOSED = "Check-in window closed. Class has started"


@dataclass(frozen=True)
class AttendanceRules:
    """Immutable snapshot of the timetable settings row."""

    check_in_window: int = DEFAULT_CHECK_IN_WINDOW  # minutes before lesson start
    late_threshold: int = DEFAULT_LATE_THRESHOLD  # minutes after lesson start
    location_required: bool = False

    @classmethod
    def from_row(cls, row) -> AttendanceRules:
        if row is None:
            return cls()
        window = row.attendance_check_in_window
        threshold = row.attendance_late_threshold
        return cls(
            check_in_window=DEFAULT_CHECK_IN_WINDOW if window is None else window,
            late_threshold=DEFAULT_LATE_THRESHOLD if threshold is None else threshold,
            location_required=bool(row.attendance_location_required),
        )


@dataclass(frozen=True)
class CheckInDecision:
    can_check_in: bool
    is_late: bool = False
    reason: str | None = None
    minutes_until_open: int | None = None


def lesson_start_for(day: date, period_start: time, tz: tzinfo) -> datetime:
    """Concrete start instant of a lesson period on ``day`` (seconds dropped)."""
    return datetime(day.year, day.month, day.day, period_start.hour, period_start.minute, tzinfo=tz)


def check_in_opens(lesson_start: datetime, rules: AttendanceRules) -> datetime:
    return lesson_start - timedelta(minutes=rules.check_in_window)


def check_in_closes(lesson_start: datetime, rules: AttendanceRules) -> datetime:
    return lesson_start + timedelta(minutes=rules.late_threshold)


def evaluate_check_in(lesson_start: datetime, now: datetime, rules: AttendanceRules) -> CheckInDecision:
    """Eligible iff ``start - window <= now <= start + threshold``; late iff ``now > start``."""
    earliest = check_in_opens(lesson_start, rules)
    latest = check_in_closes(lesson_start, rules)

    if now < earliest:
        minutes = math.ceil((earliest - now).total_seconds() / 60)
        plural = "" if minutes == 1 else "s"
        return CheckInDecision(
            can_check_in=False,
            reason=f"Too early. Check-in opens in {minutes} minute{plural}",
            minutes_until_open=minutes,
        )

    if now > latest:
        return CheckInDecision(can_check_in=False, is_late=True, reason=WINDOW_CLOSED)

    return CheckInDecision(can_check_in=True, is_late=now > lesson_start)


def evaluate_slot(period_start: time | None, now: datetime, rules: AttendanceRules) -> CheckInDecision:
    """Evaluate today's occurrence of a lesson period against ``now``."""
    if period_start is None:
        return CheckInDecision(can_check_in=False, reason=NO_LESSON_PERIOD)
    lesson_start = lesson_start_for(now.date(), period_start, now.tzinfo)
    return evaluate_check_in(lesson_start, now, rules)
