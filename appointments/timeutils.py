# appointments/timeutils.py
"""
Time-of-day arithmetic for the scheduling engine.

Inside the engine a time of day is an int: minutes since midnight. Strings
("H:MM" or "HH:MM", 24 hour clock) and datetime.time objects are converted
at the edges and always rendered back zero-padded, so ordering never
depends on string comparison.
"""

import calendar
import re
from datetime import date, datetime, time, timedelta

from django.utils import timezone

from .exceptions import InvalidRequest

MINUTES_PER_DAY = 24 * 60

TIME_PATTERN = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')

WEEKDAY_CODES = ('mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')


def parse_hhmm(value: str) -> int:
    """Parse an "HH:MM" string into minutes since midnight."""
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise InvalidRequest(f"Invalid time '{value}'. Use HH:MM (24 hour) format.")
    return int(match.group(1)) * 60 + int(match.group(2))


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def to_minutes(value) -> int:
    """Accept a datetime.time, an "HH:MM" string or an int of minutes."""
    if isinstance(value, bool):
        raise InvalidRequest(f"Invalid time '{value}'.")
    if isinstance(value, int):
        if not 0 <= value < MINUTES_PER_DAY:
            raise InvalidRequest(f"Invalid time '{value}'.")
        return value
    if isinstance(value, time):
        return time_to_minutes(value)
    return parse_hhmm(value)


def minutes_to_time(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def format_minutes(minutes: int) -> str:
    """Render minutes since midnight as zero-padded HH:MM (24:00 for end of day)."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_code(day: date) -> str:
    return WEEKDAY_CODES[day.weekday()]


def to_date(value) -> date:
    """Accept a date, a datetime or an ISO "YYYY-MM-DD" string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise InvalidRequest(f"Invalid date '{value}'. Use YYYY-MM-DD format.") from None


def add_months(day: date, months: int) -> date:
    """Same day-of-month `months` later, clamped to the last day of a shorter month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def local_datetime(day: date, minutes: int) -> datetime:
    """Aware datetime for a calendar day and time of day in the site time zone."""
    naive = datetime.combine(day, time.min) + timedelta(minutes=minutes)
    return timezone.make_aware(naive, timezone.get_current_timezone())


def hours_until(moment: datetime, now: datetime) -> float:
    return (moment - now).total_seconds() / 3600


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Half-open intervals: back-to-back spans do not overlap.
    return start_a < end_b and start_b < end_a
