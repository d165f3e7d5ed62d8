from datetime import date, datetime, time, timezone
from typing import Tuple
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to UTC timezone-aware datetime.

    Args:
        dt: Datetime object to convert

    Returns:
        datetime: UTC timezone-aware datetime
    """
    if dt.tzinfo is None:
        # Assume naive datetime is in UTC
        return dt.replace(tzinfo=timezone.utc)
    else:
        # Convert to UTC
        return dt.astimezone(timezone.utc)


def local_date(dt: datetime, zone: ZoneInfo) -> date:
    """
    Calendar date of an instant as seen in the given zone.

    Args:
        dt: Instant to convert; naive values are treated as UTC
        zone: Zone whose wall clock decides the date

    Returns:
        date: The local calendar date
    """
    return to_utc(dt).astimezone(zone).date()


def utc_day_bounds(day: date) -> Tuple[datetime, datetime]:
    """
    Closed window covering a whole calendar day in UTC, as naive datetimes.

    The end is truncated to millisecond precision (23:59:59.999).
    """
    start = datetime.combine(day, time.min)
    end = datetime.combine(day, time(23, 59, 59, 999000))
    return start, end


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z`` for UTC."""
    return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
