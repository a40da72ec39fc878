"""
timezone_utils.py: Standardized timezone handling across the application

This module resolves configured timezone names and formats event times for
display in the zone the calendar feed originally used.
"""

from datetime import datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Default timezone to use if none is specified
DEFAULT_TIMEZONE = "UTC"

# Common timezone mappings for user-friendly configuration
COMMON_TIMEZONE_ALIASES = {
    "est": "America/New_York",
    "cst": "America/Chicago",
    "mst": "America/Denver",
    "pst": "America/Los_Angeles",
    "edt": "America/New_York",
    "cdt": "America/Chicago",
    "mdt": "America/Denver",
    "pdt": "America/Los_Angeles",
    "gmt": "UTC",
    "utc": "UTC"
}


class UnknownTimezoneError(ValueError):
    """Raised when a timezone name cannot be resolved."""


def get_timezone(tz_name: str) -> ZoneInfo:
    """
    Get a ZoneInfo object for the specified timezone name.

    Args:
        tz_name: IANA timezone name or one of the common aliases

    Returns:
        ZoneInfo object for the timezone

    Raises:
        UnknownTimezoneError: if the name is empty or not a known zone.
        Unknown names are never replaced by a default.
    """
    if not tz_name or not isinstance(tz_name, str):
        raise UnknownTimezoneError(f"Invalid timezone name: {tz_name!r}")

    name = tz_name.strip()
    alias = COMMON_TIMEZONE_ALIASES.get(name.lower())
    if alias:
        name = alias

    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise UnknownTimezoneError(f"Unknown timezone '{tz_name}': {e}") from e


def format_time_range(start: datetime, end: datetime, all_day: bool = False,
                      zone: Optional[Union[str, ZoneInfo]] = None) -> str:
    """
    Format an event's time span in a user-friendly way.

    Args:
        start: Event start (aware)
        end: Event end (aware)
        all_day: Whether the event is date-only (end is exclusive)
        zone: Optional zone to convert the times into before display

    Returns:
        Formatted time string
    """
    if isinstance(zone, str):
        zone = get_timezone(zone)
    if zone is not None and not all_day:
        start = start.astimezone(zone)
        end = end.astimezone(zone)

    if all_day:
        last_day = (end - timedelta(days=1)).date() if end > start else start.date()
        if last_day <= start.date():
            return f"All day on {start.strftime('%A, %B %d, %Y')}"
        return f"All day {start.strftime('%a %b %d')} - {last_day.strftime('%a %b %d, %Y')}"

    zone_label = start.tzname() or DEFAULT_TIMEZONE
    if start.date() == end.date():
        return (
            f"{start.strftime('%A, %B %d, %Y')} "
            f"{start.strftime('%H:%M')} - {end.strftime('%H:%M')} {zone_label}"
        )
    return (
        f"{start.strftime('%A, %B %d, %Y %H:%M')} - "
        f"{end.strftime('%A, %B %d, %Y %H:%M')} {zone_label}"
    )
