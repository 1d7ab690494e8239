"""
Working Time Classifier

Splits completed shifts into regular and overtime hours. Pure functions only:
callers pass the instants (naive UTC, as stored) and the reference timezone.

Rules:
- A shift whose clock-in falls on a Sunday is overtime in full.
- Otherwise hours before the standard window start and after the window end
  are overtime; both segments may apply to the same shift.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from timezone_utils import get_business_timezone, to_business_time, to_utc_naive

SUNDAY = 6  # datetime.weekday()


@dataclass(frozen=True)
class StandardWindow:
    """Regular working hours as fractional hours of the local day"""
    start: float = 8.0
    end: float = 20.0

    def __post_init__(self):
        if not 0 <= self.start <= self.end <= 24:
            raise ValueError(f"Invalid standard window {self.start}-{self.end}")


DEFAULT_WINDOW = StandardWindow()


@dataclass(frozen=True)
class ShiftHours:
    total_hours: float
    regular_hours: float
    overtime_hours: float


@dataclass(frozen=True)
class WorkingTime:
    working_days: int
    total_hours: float
    regular_hours: float
    overtime_hours: float

    def to_dict(self):
        return {
            'working_days': self.working_days,
            'total_hours': round(self.total_hours, 2),
            'regular_hours': round(self.regular_hours, 2),
            'overtime_hours': round(self.overtime_hours, 2)
        }


def fractional_hour(moment: datetime) -> float:
    """7:30 -> 7.5"""
    return moment.hour + moment.minute / 60 + moment.second / 3600


def shift_total_hours(clock_in: datetime, clock_out: datetime,
                      duration_minutes: Optional[int] = None) -> float:
    if duration_minutes is not None:
        return duration_minutes / 60
    elapsed = to_utc_naive(clock_out) - to_utc_naive(clock_in)
    return elapsed.total_seconds() / 3600


def window_overtime_hours(start_hour: float, end_hour: float,
                          window: StandardWindow = DEFAULT_WINDOW) -> float:
    """
    Overtime outside the standard window for a shift spanning [start_hour, end_hour].

    Early and late segments are additive: the early segment ends at
    window.start, which never exceeds window.end.
    """
    overtime = 0.0

    if start_hour < window.start:
        early_end = min(window.start, end_hour)
        overtime += max(0.0, early_end - start_hour)

    if end_hour > window.end:
        late_start = max(window.end, start_hour)
        overtime += max(0.0, end_hour - late_start)

    return max(0.0, overtime)


def classify_shift(clock_in: datetime, clock_out: datetime,
                   duration_minutes: Optional[int] = None,
                   window: StandardWindow = DEFAULT_WINDOW,
                   tz=None) -> ShiftHours:
    """
    Classify one completed shift into regular and overtime hours.

    Args:
        clock_in: Clock-in instant (naive UTC or aware)
        clock_out: Clock-out instant (naive UTC or aware)
        duration_minutes: Stored shift duration; derived from the instants when None
        window: Standard working window in local hours
        tz: Business reference timezone (IST by default)

    Returns:
        ShiftHours
    """
    tz = tz or get_business_timezone()
    total_hours = shift_total_hours(clock_in, clock_out, duration_minutes)

    local_in = to_business_time(clock_in, tz)
    local_out = to_business_time(clock_out, tz)

    # Rest-day premium takes precedence over the window rule
    if local_in.weekday() == SUNDAY:
        return ShiftHours(total_hours=total_hours, regular_hours=0.0, overtime_hours=total_hours)

    start_hour = fractional_hour(local_in)
    # Hours past the clock-in day's midnight for shifts that run overnight
    end_hour = fractional_hour(local_out) + 24 * (local_out.date() - local_in.date()).days

    overtime_hours = window_overtime_hours(start_hour, end_hour, window)
    regular_hours = max(0.0, total_hours - overtime_hours)

    return ShiftHours(total_hours=total_hours, regular_hours=regular_hours, overtime_hours=overtime_hours)


def aggregate_working_time(shifts: Iterable, window: StandardWindow = DEFAULT_WINDOW,
                           tz=None) -> WorkingTime:
    """
    Aggregate completed shifts: one working day per shift, hours summed.

    Each item needs `clock_in_time`, `clock_out_time` and `duration_minutes`.
    """
    working_days = 0
    total_hours = 0.0
    overtime_hours = 0.0

    for shift in shifts:
        hours = classify_shift(shift.clock_in_time, shift.clock_out_time,
                               shift.duration_minutes, window=window, tz=tz)
        working_days += 1
        total_hours += hours.total_hours
        overtime_hours += hours.overtime_hours

    return WorkingTime(
        working_days=working_days,
        total_hours=total_hours,
        regular_hours=max(0.0, total_hours - overtime_hours),
        overtime_hours=overtime_hours
    )
