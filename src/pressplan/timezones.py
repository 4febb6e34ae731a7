"""Conversion between internal UTC instants and plant-local wall time.

Every instant the scheduler stores or compares is a timezone-aware UTC
datetime. Plant-local time only exists at the edges: reading shift and break
times from configuration, bucketing placements into local calendar days, and
displaying results. These two functions are the only place the conversion
happens.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@lru_cache(maxsize=32)
def get_zone(name: str) -> ZoneInfo:
    """Look up a zone by IANA name.

    Raises:
        ValueError: If the zone is unknown
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def to_local(instant: datetime, zone_name: str) -> datetime:
    """Convert a UTC (or any aware) instant to plant-local wall time.

    Raises:
        ValueError: If the instant is naive
    """
    if instant.tzinfo is None:
        raise ValueError(f"Refusing to convert naive datetime {instant.isoformat()} to local time")
    return instant.astimezone(get_zone(zone_name))


def from_local(local: datetime, zone_name: str) -> datetime:
    """Convert plant-local wall time to a UTC instant.

    Naive datetimes are interpreted as plant-local. Aware datetimes are
    converted as-is, so an already converted value is never shifted twice.
    """
    if local.tzinfo is None:
        local = local.replace(tzinfo=get_zone(zone_name))
    return local.astimezone(timezone.utc)


def local_date(instant: datetime, zone_name: str) -> date:
    """Plant-local calendar date of an instant."""
    return to_local(instant, zone_name).date()


def at_local_time(day: date, clock: time, zone_name: str) -> datetime:
    """UTC instant for a plant-local wall clock time on a given date."""
    return from_local(datetime.combine(day, clock), zone_name)


def ensure_utc(instant: datetime) -> datetime:
    """Normalize an aware datetime to UTC; naive values are taken to be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into a UTC instant."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_instant(instant: datetime | None) -> str | None:
    """Render a UTC instant as ISO-8601 with a ``Z`` suffix."""
    if instant is None:
        return None
    return ensure_utc(instant).isoformat().replace("+00:00", "Z")
