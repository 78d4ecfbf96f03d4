"""Parsing and arithmetic for ``YYYY-MM-DD`` dates and ``HH:MM`` times."""

from __future__ import annotations

import re
from datetime import date, datetime

from quorum.domain.errors import InvalidDate, InvalidTime

DATE_FORMAT = "%Y-%m-%d"

DAY_START = "00:00"
DAY_END = "23:59"

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError) as exc:
        raise InvalidDate() from exc


def is_valid_time(value: str) -> bool:
    return bool(_TIME_RE.match(value))


def parse_time(value: str) -> str:
    """Validate an ``HH:MM`` string and return it zero-padded."""
    m = _TIME_RE.match(value)
    if m is None:
        raise InvalidTime()
    return f"{int(m.group(1)):02d}:{m.group(2)}"


def to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def from_minutes(value: int) -> str:
    return f"{value // 60:02d}:{value % 60:02d}"


def compare_times(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is earlier than, equal to or later than ``b``."""
    ma, mb = to_minutes(a), to_minutes(b)
    return (ma > mb) - (ma < mb)


def normalize_time_range(
    start: str | None, end: str | None
) -> tuple[str | None, str | None]:
    """Treat the pair as unordered: swap when start is after end."""
    if not start or not end:
        return start, end
    if compare_times(start, end) > 0:
        return end, start
    return start, end


def duration_hours(start: str, end: str) -> float:
    minutes = to_minutes(end) - to_minutes(start)
    return max(minutes, 0) / 60.0


def weekday_index(value: date) -> int:
    """Weekday with Sunday as 0, matching the calendar configuration."""
    return (value.weekday() + 1) % 7
