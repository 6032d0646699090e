"""
UTC helpers shared by the scheduling services.

All reservation instants are stored and compared in UTC. Weekdays use the
storage convention 0=Sunday..6=Saturday.
"""

from datetime import date, datetime, time, timedelta, timezone
import re
from typing import Optional

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def sunday_based_weekday(day: date) -> int:
    """Weekday index with Sunday=0 (``date.weekday()`` uses Monday=0)."""
    return (day.weekday() + 1) % 7


def combine_utc(day: date, at: time) -> datetime:
    return datetime.combine(day, at.replace(tzinfo=None), tzinfo=timezone.utc)


def start_of_day(day: date) -> datetime:
    return combine_utc(day, time.min)


def end_of_day(day: date) -> datetime:
    return combine_utc(day, time.max)


def end_of_tomorrow(now: datetime) -> datetime:
    """Last instant (23:59:59.999999 UTC) of the day after ``now``."""
    return end_of_day(ensure_utc(now).date() + timedelta(days=1))


def parse_time_string(value: str) -> Optional[time]:
    """Parse ``H:MM`` / ``HH:MM`` in 24h format; None when malformed."""
    if not isinstance(value, str):
        return None
    match = TIME_PATTERN.match(value.strip())
    if not match:
        return None
    return time(int(match.group(1)), int(match.group(2)))


def parse_date_string(value: str) -> Optional[date]:
    """Parse ``YYYY-MM-DD``; None when malformed or not a real date."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
