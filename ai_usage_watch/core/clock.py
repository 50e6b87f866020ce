"""
Time helpers shared by the aggregator and snapshot builder.

Records carry timezone-aware instants; day boundaries are taken in the
configured display timezone (the system local zone when none is given).
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional


# Instants this close to the calendar limits overflow when shifted into a zone
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc) + timedelta(days=1)
_LATEST = datetime.max.replace(tzinfo=timezone.utc) - timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC.

    Raises:
        ValueError: If the value is not ISO-8601 or lies within a day of the
            representable range, where display-zone conversion would overflow
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        instant = parsed.astimezone(timezone.utc)
    except OverflowError as e:
        raise ValueError(f"timestamp out of range: {value}") from e
    if not _EARLIEST <= instant <= _LATEST:
        raise ValueError(f"timestamp out of range: {value}")
    return parsed


def to_local(value: datetime, tz: Optional[tzinfo] = None) -> datetime:
    # astimezone(None) converts to the system local zone
    return value.astimezone(tz)


def start_of_day(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Local midnight of the day containing ``now``."""
    local = to_local(now, tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Local Monday 00:00 of the week containing ``now``."""
    midnight = start_of_day(now, tz)
    return midnight - timedelta(days=midnight.weekday())
