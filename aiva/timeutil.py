"""Timestamp helpers.

Everything is persisted as a UTC ISO 8601 string so that lexical order in
SQL matches chronological order.
"""

from datetime import UTC, date, datetime, time, tzinfo


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def to_utc_iso(value: datetime) -> str:
    """Normalise an aware datetime to a UTC ISO string (naive is taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_datetime(value: str, tz: tzinfo = UTC) -> datetime:
    """Parse an ISO date or datetime. Naive values are interpreted in *tz*."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` or a full ISO datetime down to its date."""
    if len(value) == 10:
        return date.fromisoformat(value)
    return datetime.fromisoformat(value).date()


def local_midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)
