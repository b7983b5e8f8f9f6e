"""
Timezone helpers.

All timestamps are stored and compared in UTC. Local business time is only
used to format dates shown to leads.
"""

from datetime import datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from dateutil.parser import isoparse

TZ_UTC = timezone.utc


def utc_now() -> datetime:
    """
    Current time in UTC (timezone-aware).

    Returns:
        datetime with tzinfo=UTC
    """
    return datetime.now(TZ_UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Naive datetimes are assumed to already be UTC, which is how the
    record store returns timestamps without offset.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=TZ_UTC)
    return dt.astimezone(TZ_UTC)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a store timestamp (ISO 8601 string or datetime) into aware UTC.

    Args:
        value: ISO string, datetime or None

    Returns:
        UTC datetime, or None when value is empty
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    return to_utc(isoparse(value))


def iso_utc(dt: Optional[datetime] = None) -> str:
    """
    ISO 8601 string in UTC, ready to be written to the store.

    Args:
        dt: datetime to format (default: now)
    """
    if dt is None:
        dt = utc_now()
    return to_utc(dt).isoformat()


def format_local_date(dt: datetime, tz_name: str, fmt: str = "%d/%m/%Y") -> str:
    """Format a datetime as a local calendar date (dd/mm/YYYY by default)."""
    return to_utc(dt).astimezone(ZoneInfo(tz_name)).strftime(fmt)
