"""
Scheduling helpers: duration estimate from garment volume and countdown to the scheduled date.
Both are pure functions of their inputs (and `now`), so they are re-evaluated on every read.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.clock import as_utc, utcnow
from app.core.config import settings

MIN_MINUTES_PER_GARMENT = 1
MAX_MINUTES_PER_GARMENT = 2
OVERDUE = "OVERDUE"


@dataclass(frozen=True)
class DurationEstimate:
    min_hours: float
    max_hours: float
    hours: float  # persisted as estimated_duration_hours (hour midpoint)
    display: str


@dataclass(frozen=True)
class Countdown:
    is_overdue: bool
    display: str
    seconds_remaining: int


def estimate_duration(total_garments: int, working_hours_per_day: Optional[int] = None) -> DurationEstimate:
    """
    Each garment takes 1-2 minutes. Up to one working day the range is shown in hours,
    beyond that in whole working days. The stored estimate is always the hour midpoint.
    """
    if total_garments < 0:
        raise ValueError("total_garments must be non-negative")
    day = working_hours_per_day or settings.working_hours_per_day
    min_hours = total_garments * MIN_MINUTES_PER_GARMENT / 60
    max_hours = total_garments * MAX_MINUTES_PER_GARMENT / 60
    midpoint = (min_hours + max_hours) / 2

    if max_hours <= day:
        low, high = math.ceil(min_hours), math.ceil(max_hours)
        display = f"{low} hours" if low == high else f"{low}-{high} hours"
    else:
        low, high = math.ceil(min_hours / day), math.ceil(max_hours / day)
        display = f"{low} day(s)" if low == high else f"{low}-{high} day(s)"

    return DurationEstimate(min_hours=min_hours, max_hours=max_hours, hours=midpoint, display=display)


def display_for_hours(hours: float, working_hours_per_day: Optional[int] = None) -> str:
    """Display range for a stored midpoint estimate (the garment volume it was computed from)."""
    midpoint_minutes = (MIN_MINUTES_PER_GARMENT + MAX_MINUTES_PER_GARMENT) / 2
    garments = round(hours * 60 / midpoint_minutes)
    return estimate_duration(garments, working_hours_per_day).display


def order_duration_display(
    estimated_duration_hours: Optional[float],
    total_garments: int,
    working_hours_per_day: Optional[int] = None,
) -> str:
    """Scheduled orders show their stored estimate; unscheduled ones the estimate for current volume."""
    if estimated_duration_hours is not None:
        return display_for_hours(estimated_duration_hours, working_hours_per_day)
    return estimate_duration(total_garments, working_hours_per_day).display


def countdown(scheduled_date: Optional[datetime], now: Optional[datetime] = None) -> Optional[Countdown]:
    """Time left until scheduled_date. None when nothing is scheduled."""
    if scheduled_date is None:
        return None
    scheduled = as_utc(scheduled_date)
    now = as_utc(now) if now is not None else utcnow()

    remaining = scheduled - now
    total_seconds = int(remaining.total_seconds())
    if remaining.total_seconds() < 0:
        return Countdown(is_overdue=True, display=OVERDUE, seconds_remaining=0)

    hours = total_seconds // 3600
    minutes = (total_seconds // 60) % 60
    if hours >= 24:
        return Countdown(is_overdue=False, display=f"{hours // 24}d {hours % 24}h", seconds_remaining=total_seconds)
    return Countdown(is_overdue=False, display=f"{hours}h {minutes}m", seconds_remaining=total_seconds)


def is_overdue(scheduled_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    cd = countdown(scheduled_date, now)
    return bool(cd and cd.is_overdue)
