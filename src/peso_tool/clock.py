"""Días y semanas locales en la zona horaria configurada."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo

from dateutil import tz


def get_zone(name: str) -> tzinfo:
    """Resolve an IANA zone name.

    Raises:
        ValueError: If the zone is unknown.
    """
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown timezone: {name}")
    return zone


def _require_aware(instant: datetime) -> None:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValueError(f"Instant must be timezone-aware: {instant.isoformat()}")


def to_local(instant: datetime, zone: tzinfo) -> datetime:
    """Convert an aware instant to local wall time."""
    _require_aware(instant)
    return instant.astimezone(zone)


def local_day(instant: datetime, zone: tzinfo) -> date:
    """Calendar day of ``instant`` in ``zone``."""
    return to_local(instant, zone).date()


def week_start(value: date | datetime, zone: tzinfo) -> date:
    """Monday of the local week containing ``value``."""
    day = local_day(value, zone) if isinstance(value, datetime) else value
    return day - timedelta(days=day.weekday())


def start_of_day(day: date, zone: tzinfo) -> datetime:
    """Local midnight at the start of ``day`` as an aware datetime."""
    return datetime.combine(day, time.min).replace(tzinfo=zone)


def days_back(now: datetime, instant: datetime, zone: tzinfo) -> int:
    """Whole local days from ``instant``'s day to ``now``'s day.

    Negative when ``instant`` falls on a later local day than ``now``.
    """
    return (local_day(now, zone) - local_day(instant, zone)).days


def weeks_between(later_week: date, earlier_week: date) -> int:
    """Whole weeks between two Monday dates."""
    return (later_week - earlier_week).days // 7


def to_utc(instant: datetime) -> datetime:
    """Normalize an aware instant to UTC."""
    _require_aware(instant)
    return instant.astimezone(tz.UTC)
