"""Conversions between local wall-clock times and canonical GMT ``HH:MM`` strings.

Every persisted time (event starts and the lights window) is stored in GMT.
Conversions read the caller's UTC offset at call time rather than storing it,
so a canonical value is always correct while a raw local input captured once
and reused across a DST change drifts by the DST delta. That drift is an
accepted limitation.
"""

from __future__ import annotations

import re
from datetime import datetime

MINUTES_PER_DAY = 1440

TIME_PATTERN = re.compile(r"([01]\d|2[0-3]):([0-5]\d)")


def is_valid_time(time_str: object) -> bool:
    """Return True when ``time_str`` is a zero-padded 24-hour ``HH:MM`` string."""
    return isinstance(time_str, str) and TIME_PATTERN.fullmatch(time_str) is not None


def parse_hhmm(time_str: str) -> int:
    """Return the minute-of-day for an ``HH:MM`` string."""
    match = TIME_PATTERN.fullmatch(time_str) if isinstance(time_str, str) else None
    if match is None:
        raise ValueError(f"Invalid time {time_str!r}; expected HH:MM (00:00-23:59).")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    """Format a minute count as ``HH:MM``, wrapping modulo one day."""
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def current_utc_offset_minutes(now: datetime | None = None) -> int:
    """Return the local offset from UTC in minutes (east positive)."""
    current = now if now is not None else datetime.now()
    if current.tzinfo is None:
        current = current.astimezone()
    offset = current.utcoffset()
    if offset is None:
        return 0
    return int(offset.total_seconds() // 60)


def minutes_since_midnight(now: datetime | None = None) -> int:
    """Return the local wall-clock minute of the day."""
    current = now if now is not None else datetime.now()
    return current.hour * 60 + current.minute


def local_to_canonical(time_str: str, offset_minutes: int | None = None) -> str:
    """Convert a local ``HH:MM`` to its GMT equivalent."""
    if offset_minutes is None:
        offset_minutes = current_utc_offset_minutes()
    return format_minutes(parse_hhmm(time_str) - offset_minutes)


def canonical_to_local(time_str: str, offset_minutes: int | None = None) -> str:
    """Convert a GMT ``HH:MM`` to the local wall-clock equivalent."""
    if offset_minutes is None:
        offset_minutes = current_utc_offset_minutes()
    return format_minutes(parse_hhmm(time_str) + offset_minutes)


__all__ = [
    "MINUTES_PER_DAY",
    "TIME_PATTERN",
    "canonical_to_local",
    "current_utc_offset_minutes",
    "format_minutes",
    "is_valid_time",
    "local_to_canonical",
    "minutes_since_midnight",
    "parse_hhmm",
]
