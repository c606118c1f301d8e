"""
UTC <-> local wall-clock conversion.

The backend stores and returns UTC instants only ("2025-12-05T19:20:53.531Z").
Everything the worker sees or edits is local wall-clock time in the viewer's
timezone. All conversion between the two happens here; callers pass the viewer
timezone explicitly and never parse timestamps themselves.
"""
from __future__ import annotations

import os
import re
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser

from core.errors import InvalidDatetime, InvalidInput

# datetime-local control value: YYYY-MM-DDTHH:MM, optional :SS, "T" or a single space
_EDITABLE_FIELD_RE = re.compile(
    r"^([0-9]{4})-([0-9]{2})-([0-9]{2})[T ]([0-9]{2}):([0-9]{2})(?::([0-9]{2}))?$"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(name: str) -> ZoneInfo:
    """Look up an IANA timezone name such as "Europe/Madrid"."""
    if not name or not isinstance(name, str):
        raise InvalidInput("Timezone name is required")
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidInput(f"Unknown timezone: {name}") from exc


def local_timezone() -> ZoneInfo:
    """
    Best-effort IANA timezone of the host.

    Only the entry point should call this; everything below it receives the
    timezone as a parameter.
    """
    tz_env = (os.getenv("TIMECLOCK_TIMEZONE") or os.getenv("TZ") or "").lstrip(":")
    if tz_env:
        try:
            return ZoneInfo(tz_env)
        except (ZoneInfoNotFoundError, ValueError):
            pass
    try:
        target = os.path.realpath("/etc/localtime")
        marker = "zoneinfo" + os.sep
        if marker in target:
            return ZoneInfo(target.split(marker, 1)[1])
    except (OSError, ZoneInfoNotFoundError, ValueError):
        pass
    return ZoneInfo("UTC")


def timezone_name(tz: tzinfo) -> str:
    """IANA key sent to the backend alongside status and action calls."""
    key = getattr(tz, "key", None)
    if key:
        return key
    if tz is timezone.utc:
        return "UTC"
    raise InvalidInput(f"Timezone {tz!r} has no IANA name")


def _as_tz(tz) -> tzinfo:
    if isinstance(tz, str):
        return resolve_timezone(tz)
    if not isinstance(tz, tzinfo):
        raise InvalidInput("Viewer timezone is required")
    return tz


def parse_utc_instant(value) -> datetime:
    """Parse an ISO-8601 timestamp (or datetime) and normalize it to aware UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = parser.isoparse(value.strip())
        except (ValueError, OverflowError) as exc:
            raise InvalidDatetime(f"Invalid datetime: {value!r}") from exc
    else:
        raise InvalidDatetime(f"Invalid datetime: {value!r}")

    if parsed.tzinfo is None:
        # Backend timestamps are UTC even when the offset is omitted
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_utc_iso(instant) -> str:
    """Render an instant the way the backend expects it: millisecond precision, "Z" suffix."""
    utc = parse_utc_instant(instant)
    return f"{utc.strftime('%Y-%m-%dT%H:%M:%S')}.{utc.microsecond // 1000:03d}Z"


def to_local_display(instant, tz) -> str:
    """Full date and time in the viewer's timezone, e.g. "05/12/2025, 20:20"."""
    if instant is None or instant == "":
        return ""
    local = parse_utc_instant(instant).astimezone(_as_tz(tz))
    return f"{local.day:02d}/{local.month:02d}/{local.year:04d}, {local.hour:02d}:{local.minute:02d}"


def to_local_short_time(instant, tz) -> str:
    if instant is None or instant == "":
        return ""
    local = parse_utc_instant(instant).astimezone(_as_tz(tz))
    return f"{local.hour:02d}:{local.minute:02d}"


def to_local_editable_field(instant, tz) -> str:
    """
    Value for a datetime-local editing control (YYYY-MM-DDTHH:MM).

    Seconds are dropped; from_local_editable_field() is the exact inverse for
    minute-aligned instants.
    """
    if instant is None or instant == "":
        return ""
    local = parse_utc_instant(instant).astimezone(_as_tz(tz))
    return (
        f"{local.year:04d}-{local.month:02d}-{local.day:02d}"
        f"T{local.hour:02d}:{local.minute:02d}"
    )


def from_local_editable_field(value: str, tz) -> datetime:
    """
    Parse a local wall-clock value from an editing control and return the UTC instant.

    Raises InvalidDatetime for anything that is not a complete, valid local
    time in ``tz``. Wall-clock times skipped by a DST change are rejected; in a
    repeated hour the earlier occurrence is used.
    """
    if not isinstance(value, str):
        raise InvalidDatetime(f"Invalid datetime: {value!r}")
    match = _EDITABLE_FIELD_RE.match(value)
    if not match:
        raise InvalidDatetime(f"Invalid datetime: {value!r}")

    zone = _as_tz(tz)
    year, month, day, hour, minute, second = (int(part) if part else 0 for part in match.groups())
    try:
        local = datetime(year, month, day, hour, minute, second, tzinfo=zone)
    except ValueError as exc:
        raise InvalidDatetime(f"Invalid datetime: {value!r}") from exc

    utc = local.astimezone(timezone.utc)
    if utc.astimezone(zone).replace(tzinfo=None) != local.replace(tzinfo=None):
        # Skipped by a DST change
        raise InvalidDatetime(f"{value} does not exist in timezone {zone}")
    return utc


def elapsed_minutes(start, end) -> float:
    """Minutes between two instants, computed on UTC values only."""
    return (parse_utc_instant(end) - parse_utc_instant(start)).total_seconds() / 60
