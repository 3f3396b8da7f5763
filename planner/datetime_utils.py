"""
Date and timestamp utilities for the application.

Xano stores dates as epoch milliseconds. All day-level arithmetic happens on
``datetime.date`` values in the planner's local timezone.
"""
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Union
from zoneinfo import ZoneInfo


DateLike = Union[date, datetime, int, float, str]


def get_planner_timezone():
    """
    Get the planner's local timezone object.

    Returns:
        ZoneInfo: timezone configured by PLANNER_TIMEZONE
    """
    from planner.config import Config
    return ZoneInfo(Config.PLANNER_TIMEZONE)


def timestamp_to_date(timestamp: Union[int, float]) -> date:
    """Convert a Xano epoch-millisecond timestamp to a local calendar date."""
    dt = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    return dt.astimezone(get_planner_timezone()).date()


def date_to_timestamp(d: Union[date, datetime]) -> int:
    """Convert a date (local midnight) or datetime to epoch milliseconds."""
    if isinstance(d, datetime):
        dt = d if d.tzinfo else d.replace(tzinfo=get_planner_timezone())
    else:
        dt = datetime(d.year, d.month, d.day, tzinfo=get_planner_timezone())
    return int(dt.timestamp() * 1000)


def to_date(value: Optional[DateLike]) -> Optional[date]:
    """
    Coerce a timestamp, ISO string, datetime or date into a date.

    Args:
        value: epoch milliseconds, 'YYYY-MM-DD' / ISO string, datetime, or date

    Returns:
        date, or None if value is empty
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(get_planner_timezone()).date()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return timestamp_to_date(value)
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        return to_date(parsed)


def days_between(start: date, end: date) -> List[date]:
    """Get all days between two dates (inclusive). Empty when end is before start."""
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def days_difference(start: date, end: date) -> int:
    """Number of days between two dates, counting both ends."""
    return (end - start).days + 1


def date_key(d: date) -> str:
    """Grouping key in YYYY-MM-DD format."""
    return d.strftime("%Y-%m-%d")


def start_of_week(d: date) -> date:
    """Sunday on or before the given date."""
    # weekday(): Monday=0 ... Sunday=6
    return d - timedelta(days=(d.weekday() + 1) % 7)


def monday_of_week(d: date) -> date:
    """Monday on or before the given date."""
    return d - timedelta(days=d.weekday())


def end_of_month(d: date) -> date:
    if d.month == 12:
        return date(d.year, 12, 31)
    return date(d.year, d.month + 1, 1) - timedelta(days=1)


def add_months(d: date, months: int) -> date:
    """First day of the month that is ``months`` after d's month."""
    month_index = d.year * 12 + (d.month - 1) + months
    return date(month_index // 12, month_index % 12 + 1, 1)


def quarter_of(d: date) -> int:
    """Quarter number 1-4."""
    return (d.month - 1) // 3 + 1


def short_date_label(d: date) -> str:
    """Label like '8/25'."""
    return f"{d.month}/{d.day}"


def month_label(d: date) -> str:
    """Label like "Nov '24"."""
    return d.strftime("%b '%y")


def quarter_label(quarter: int, year: int) -> str:
    """Label like "Q4 '24"."""
    return f"Q{quarter} '{str(year)[-2:]}"


def parse_dot_date(value: str) -> Optional[date]:
    """Parse a 'DD.MM.YYYY' string as used by the jobs v2 actual_quantity list."""
    parts = str(value).split(".")
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p) for p in parts)
        return date(year, month, day)
    except ValueError:
        return None
