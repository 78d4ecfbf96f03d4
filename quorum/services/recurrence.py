"""Weekly recurrence helpers: range overlap and expansion into dates."""

from __future__ import annotations

from datetime import date, datetime, time

from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

from quorum.domain.models import Recurrence


def recurrences_overlap(
    start_a: date, end_a: date | None, start_b: date, end_b: date | None
) -> bool:
    """Whether two inclusive date ranges intersect; ``None`` ends are unbounded.

    Ranges that only touch on a boundary day overlap.
    """
    if end_a is None and end_b is None:
        return True
    if end_a is None:
        return start_a <= end_b
    if end_b is None:
        return start_b <= end_a
    return start_a <= end_b and start_b <= end_a


# Indexed by day_of_week, Sunday first
_RRULE_DAYS = (SU, MO, TU, WE, TH, FR, SA)


def occurrence_dates(recurrence: Recurrence, start: date, end: date) -> list[date]:
    """Expand ``recurrence`` into the dates it covers within ``[start, end]``."""
    window_start = max(start, recurrence.start_date)
    window_end = end if recurrence.end_date is None else min(end, recurrence.end_date)
    if window_start > window_end:
        return []

    rule = rrule(
        WEEKLY,
        byweekday=_RRULE_DAYS[recurrence.day_of_week],
        dtstart=datetime.combine(window_start, time.min),
        until=datetime.combine(window_end, time.min),
    )
    return [dt.date() for dt in rule]
