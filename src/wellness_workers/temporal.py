"""Temporal windows and instant parsing.

All offsets follow the browser convention ``UTC = local + offset`` (minutes),
so a client in UTC-5 sends ``offset = 300``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidInputError

MAX_OFFSET_MINUTES = 1440
DAY = timedelta(days=1)
ONE_MS = timedelta(milliseconds=1)

DEFAULT_ASSUMED_TIMEZONE = "UTC"
TIMEZONE_ASSUMPTION_DISCLOSURE = (
    "No timezone stored on the client profile; using UTC until the client sets one."
)


@dataclass(frozen=True)
class TemporalWindow:
    """UTC bounds for one local day (or period) plus a one-day fetch buffer."""

    filter_start: datetime
    filter_end: datetime
    query_start: datetime
    query_end: datetime
    offset_minutes: float
    timezone_name: str

    def contains(self, instant: datetime) -> bool:
        """Inclusive membership test against the filter range."""
        return self.filter_start <= instant <= self.filter_end


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _from_epoch(epoch: float) -> datetime | None:
    if epoch > 1_000_000_000_000:
        epoch /= 1000.0
    try:
        return datetime.fromtimestamp(epoch, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_instant(value: Any) -> datetime | None:
    """Parse a stored date value into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (naive strings are read as UTC),
    epoch seconds/milliseconds, and ``{"seconds": ..., "nanoseconds": ...}``
    timestamp maps written by older clients. Returns None when unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return _from_epoch(float(value))
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
            try:
                return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)
            except (OverflowError, OSError, TypeError, ValueError):
                return None
        return None
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None
    numeric = raw.replace(".", "", 1)
    if numeric.isdigit():
        return _from_epoch(float(raw))
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(parsed)


def normalize_timezone_name(value: Any) -> str | None:
    """Normalize a timezone name and verify it's a valid IANA name."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.upper() == "UTC":
        return "UTC"
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    return raw


def parse_local_date(value: Any) -> date:
    """Accept a date or a ``YYYY-MM-DD`` string; raise InvalidInputError otherwise."""
    if isinstance(value, datetime):
        raise InvalidInputError(
            code="invalid_date",
            message="Expected a calendar date without a time component.",
            field="date",
        )
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise InvalidInputError(
        code="invalid_date",
        message=f"Invalid calendar date: {value!r}",
        field="date",
    )


def _validate_offset(offset_minutes: Any) -> float:
    if offset_minutes is None or isinstance(offset_minutes, bool):
        raise InvalidInputError(
            code="missing_timezone",
            message="Timezone offset is required.",
            field="timezone_offset",
        )
    try:
        offset = float(offset_minutes)
    except (TypeError, ValueError):
        raise InvalidInputError(
            code="invalid_timezone_offset",
            message=f"Invalid timezone offset: {offset_minutes!r}",
            field="timezone_offset",
        ) from None
    if not math.isfinite(offset) or abs(offset) > MAX_OFFSET_MINUTES:
        raise InvalidInputError(
            code="invalid_timezone_offset",
            message=f"Invalid timezone offset: {offset_minutes!r}",
            field="timezone_offset",
        )
    return offset


def _validate_timezone(timezone_name: Any) -> str:
    normalized = normalize_timezone_name(timezone_name)
    if normalized is None:
        raise InvalidInputError(
            code="missing_timezone" if timezone_name is None else "invalid_timezone",
            message=f"Timezone information is required (got {timezone_name!r}).",
            field="timezone",
        )
    return normalized


def local_midnight_utc(local_date: date, offset_minutes: float) -> datetime:
    """UTC instant of local midnight for ``local_date``."""
    midnight = datetime.combine(local_date, time.min, tzinfo=timezone.utc)
    return midnight + timedelta(minutes=offset_minutes)


def build_day_window(
    local_date: date | str,
    timezone_name: str | None,
    timezone_offset_minutes: float | None,
) -> TemporalWindow:
    """Window for one local calendar day, buffered by a day on each side for fetching."""
    day = parse_local_date(local_date)
    tz_name = _validate_timezone(timezone_name)
    offset = _validate_offset(timezone_offset_minutes)

    filter_start = local_midnight_utc(day, offset)
    filter_end = filter_start + DAY - ONE_MS
    return TemporalWindow(
        filter_start=filter_start,
        filter_end=filter_end,
        query_start=filter_start - DAY,
        query_end=filter_end + DAY,
        offset_minutes=offset,
        timezone_name=tz_name,
    )


def build_period_window(
    today: date | str,
    days: int,
    timezone_name: str | None,
    timezone_offset_minutes: float | None,
    now: datetime,
) -> TemporalWindow:
    """Window covering local midnight of ``today - (days - 1)`` up to ``now``."""
    if days < 1:
        raise InvalidInputError(
            code="invalid_period",
            message=f"Period must cover at least one day (got {days}).",
            field="days",
        )
    day = parse_local_date(today)
    tz_name = _validate_timezone(timezone_name)
    offset = _validate_offset(timezone_offset_minutes)

    filter_start = local_midnight_utc(day - timedelta(days=days - 1), offset)
    filter_end = as_utc(now)
    if filter_end < filter_start:
        filter_end = filter_start + DAY - ONE_MS
    return TemporalWindow(
        filter_start=filter_start,
        filter_end=filter_end,
        query_start=filter_start - DAY,
        query_end=filter_end + DAY,
        offset_minutes=offset,
        timezone_name=tz_name,
    )


def offset_minutes_for(timezone_name: str, local_date: date) -> float:
    """Derive the ``UTC = local + offset`` offset for a zone at local noon of ``local_date``."""
    zone = ZoneInfo(timezone_name)
    noon = datetime.combine(local_date, time(12, 0), tzinfo=zone)
    utcoffset = noon.utcoffset() or timedelta(0)
    return -utcoffset.total_seconds() / 60


def local_date_of(instant: datetime, offset_minutes: float) -> date:
    """Local calendar date of a UTC instant under a fixed offset."""
    return (as_utc(instant) - timedelta(minutes=offset_minutes)).date()


def resolve_timezone_context(profile: dict[str, Any] | None, on_date: date) -> dict[str, Any]:
    """Timezone name and offset for a client, with explicit disclosure when assumed.

    Uses the profile's stored ``timezone``/``timezoneOffset``; derives the
    offset from the zone when only the name is stored.
    """
    profile = profile or {}
    tz_name = normalize_timezone_name(profile.get("timezone"))
    raw_offset = profile.get("timezoneOffset")
    offset: float | None = None
    if isinstance(raw_offset, (int, float)) and not isinstance(raw_offset, bool):
        if math.isfinite(raw_offset) and abs(raw_offset) <= MAX_OFFSET_MINUTES:
            offset = float(raw_offset)

    if tz_name is not None and offset is not None:
        source = "profile"
    elif tz_name is not None:
        offset = offset_minutes_for(tz_name, on_date)
        source = "profile_zone"
    else:
        return {
            "timezone": DEFAULT_ASSUMED_TIMEZONE,
            "offset_minutes": offset or 0.0,
            "source": "assumed_default",
            "assumed": True,
            "assumption_disclosure": TIMEZONE_ASSUMPTION_DISCLOSURE,
        }
    return {
        "timezone": tz_name,
        "offset_minutes": offset,
        "source": source,
        "assumed": False,
        "assumption_disclosure": None,
    }
