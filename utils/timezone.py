"""UTC-everywhere time handling, plus the injectable clock used by services.

Everything stored or compared is UTC. Practice-local time (IST by default) is
only used when formatting dates for humans in emails.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

PRACTICE_TIMEZONE = "Asia/Kolkata"


def now_utc() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


class Clock:
    """
    Source of "now" for anything with expiry or due-date logic.

    Services take a Clock so expiry can be tested without sleeping.
    Tests pass a subclass whose now() returns a controllable value.
    """

    def now(self) -> datetime:
        return now_utc()


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


def to_local(dt: datetime, tz_name: str = PRACTICE_TIMEZONE) -> datetime:
    """
    Convert UTC datetime to a local timezone for display.

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )

    try:
        local_tz = ZoneInfo(tz_name)
    except KeyError:
        raise ValueError(f"Unknown timezone: {tz_name}")

    return dt.astimezone(local_tz)


def format_local_date(dt: datetime, tz_name: str = PRACTICE_TIMEZONE) -> str:
    """Render a date the way clients read it on invoices (DD/MM/YYYY)."""
    return to_local(dt, tz_name).strftime("%d/%m/%Y")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)
