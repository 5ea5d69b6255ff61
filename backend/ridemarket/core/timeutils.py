"""
Wall-clock helpers for offer schedules and rental time slots.

Offer times are stored as clock strings ("09:00", "9:00 AM", "21:30") next to
a calendar date, in the marketplace timezone. Rental slots are half-open
[start, end) intervals in minutes since midnight; an end earlier than its
start means the interval runs past midnight.
"""

import re
from datetime import date, datetime, time
from typing import Tuple
from zoneinfo import ZoneInfo

from ridemarket.core.config import get_settings
from ridemarket.core.exceptions import ValidationError

MINUTES_PER_DAY = 24 * 60

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*(AM|PM)?\s*$", re.IGNORECASE)


def parse_clock(value: str) -> time:
    """Parse "HH:MM" or "h:MM AM/PM" into a time. Raises ValidationError."""
    match = _CLOCK_RE.match(value or "")
    if not match:
        raise ValidationError(f"Invalid time format: {value!r}", value=value)

    hour = int(match.group(1))
    minute = int(match.group(2))
    meridiem = (match.group(3) or "").upper()

    if meridiem:
        if not 1 <= hour <= 12:
            raise ValidationError(f"Invalid time format: {value!r}", value=value)
        if meridiem == "PM" and hour != 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59:
        raise ValidationError(f"Invalid time format: {value!r}", value=value)
    return time(hour, minute)


def clock_minutes(value: str) -> int:
    parsed = parse_clock(value)
    return parsed.hour * 60 + parsed.minute


def format_minutes(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def slot_bounds(start: str, end: str) -> Tuple[int, int]:
    """Minutes for [start, end), pushing the end past midnight when it wraps."""
    start_min = clock_minutes(start)
    end_min = clock_minutes(end)
    if end_min < start_min:
        end_min += MINUTES_PER_DAY
    return start_min, end_min


def slot_in_window(start: str, end: str, window: Tuple[int, int]) -> Tuple[int, int]:
    """
    Place [start, end) on the timeline of an offer window from slot_bounds.

    When the window runs past midnight, a slot that starts before the window
    opens belongs to the next morning (20:00-02:00 lists 00:00-01:00 as
    1440-1500), so listing and reserving agree on where it falls.
    """
    slot = slot_bounds(start, end)
    if window[1] > MINUTES_PER_DAY and slot[0] < window[0]:
        slot = (slot[0] + MINUTES_PER_DAY, slot[1] + MINUTES_PER_DAY)
    return slot


def intervals_overlap(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def duration_hours(start: str, end: str) -> float:
    start_min, end_min = slot_bounds(start, end)
    if end_min == start_min:
        raise ValidationError("Start and end time must differ", start=start, end=end)
    return (end_min - start_min) / 60


def scheduled_at(day: date, clock: str) -> datetime:
    return datetime.combine(day, parse_clock(clock))


def local_now() -> datetime:
    """Naive wall-clock time in the marketplace timezone."""
    tz = ZoneInfo(get_settings().TIMEZONE)
    return datetime.now(tz).replace(tzinfo=None)
