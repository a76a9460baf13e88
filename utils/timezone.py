"""UTC-everywhere time handling, with the workshop's calendar at the edges.

Timestamps are stored and compared in UTC. Only questions about the
calendar (which day an invoice number belongs to, which month a summary
covers) are answered in the workshop's own timezone.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_BUSINESS_TIMEZONE = "Asia/Kuala_Lumpur"


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def business_date(dt: datetime, tz_name: str = DEFAULT_BUSINESS_TIMEZONE) -> date:
    """
    Calendar day at the workshop for an aware datetime.

    Args:
        dt: Timezone-aware datetime
        tz_name: IANA timezone of the workshop

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot localize naive datetime. Datetime must be timezone-aware."
        )

    try:
        local_tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {tz_name}")

    return dt.astimezone(local_tz).date()
