"""Datetime utilities for UTC timestamps and day windows.

Usage:
    from bakery_ledger.utils.datetime_utils import utc_now, day_bounds

    # For SQLAlchemy Column defaults
    updated_at = Column(DateTime, default=utc_now)

    # Half-open window covering one calendar day
    start, end = day_bounds(date(2024, 3, 1))
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple, Union


def utc_now() -> datetime:
    """Return current UTC time as a naive datetime.

    Stored timestamps are naive UTC so they compare cleanly against the
    naive day boundaries used by summary queries.

    Returns:
        Current UTC datetime without tzinfo
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    """Return the current UTC calendar date."""
    return utc_now().date()


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """
    Return the half-open datetime window ``[day 00:00, next day 00:00)``.

    Args:
        day: Calendar date

    Returns:
        Tuple of (start, end) naive datetimes
    """
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def range_bounds(start_day: date, end_day: date) -> Tuple[datetime, datetime]:
    """
    Return the datetime window covering both calendar days inclusively.

    Args:
        start_day: First day of the range
        end_day: Last day of the range (included)

    Returns:
        Tuple of (start, end) naive datetimes, end exclusive
    """
    start, _ = day_bounds(start_day)
    _, end = day_bounds(end_day)
    return start, end


def parse_date(value: Union[str, date, datetime, None]) -> date:
    """
    Parse an ISO date (``YYYY-MM-DD``) or ISO datetime string into a date.

    Args:
        value: String, date or datetime

    Returns:
        Calendar date

    Raises:
        ValueError: If the value is empty or not ISO formatted
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValueError("date is required")
    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return datetime.fromisoformat(text.replace("Z", "+00:00")).date()


def parse_datetime(value: Union[str, date, datetime]) -> datetime:
    """
    Parse an ISO date or datetime into a naive UTC datetime.

    A bare date maps to midnight of that day.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    else:
        if not value or not isinstance(value, str):
            raise ValueError("date is required")
        text = value.strip()
        if len(text) == 10:
            return datetime.combine(date.fromisoformat(text), time.min)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
