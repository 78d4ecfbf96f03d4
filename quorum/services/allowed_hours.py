"""Resolve a calendar's allowed-hours window and clamp requested times into it."""

from __future__ import annotations

from datetime import date

from quorum.domain.models import Calendar, HolidaysPolicy, TimeWindow
from quorum.services import datevalidation
from quorum.services.datevalidation import HolidayProvider
from quorum.services.times import (
    DAY_END,
    DAY_START,
    compare_times,
    to_minutes,
    weekday_index,
)

OPEN_WINDOW = TimeWindow()


def resolve_weekday_window(day_of_week: int, calendar: Calendar) -> TimeWindow:
    """Window configured for a raw weekday, ignoring holidays entirely."""
    return calendar.allowed_hours.weekdays.get(day_of_week, OPEN_WINDOW)


def combine_windows(special: TimeWindow, weekday: TimeWindow) -> TimeWindow:
    """Union of two windows: earliest start, latest end.

    Only fully bounded windows are merged. An incomplete special window
    leaves the weekday window in force, and vice versa.
    """
    if special.start is None or special.end is None:
        return weekday
    if weekday.start is None or weekday.end is None:
        return special

    return TimeWindow(
        start=min(special.start, weekday.start, key=to_minutes),
        end=max(special.end, weekday.end, key=to_minutes),
    )


def resolve_window(
    day: date, calendar: Calendar, holidays: HolidayProvider | None = None
) -> TimeWindow:
    """Effective allowed-hours window for ``day``.

    A holiday (under the ``allow`` policy) or a holiday eve (when eves are
    allowed) contributes its special window. The weekday window applies only
    when the weekday itself is allowed. When both apply they are combined.
    """
    dow = weekday_index(day)
    weekday_window = None
    if datevalidation.is_weekday_allowed(dow, calendar.allowed_weekdays):
        weekday_window = resolve_weekday_window(dow, calendar)

    special = _special_window(day, calendar, holidays)
    if special is None:
        return weekday_window or OPEN_WINDOW
    if weekday_window is None:
        return special
    return combine_windows(special, weekday_window)


def _special_window(
    day: date, calendar: Calendar, holidays: HolidayProvider | None
) -> TimeWindow | None:
    country_code = datevalidation.country_from_timezone(calendar.timezone)
    if not country_code:
        return None

    if calendar.holidays_policy == HolidaysPolicy.ALLOW and datevalidation.is_holiday(
        day, country_code, holidays
    ):
        return calendar.allowed_hours.holidays

    if calendar.allow_holiday_eves and datevalidation.is_holiday_eve(
        day, country_code, holidays
    ):
        return calendar.allowed_hours.holiday_eves

    return None


def adjust_requested_times(
    start: str | None, end: str | None, window: TimeWindow
) -> tuple[str | None, str | None]:
    """Clamp a requested range into ``window``.

    A configured bound replaces a missing or out-of-window request on its
    side. When only one bound is configured, a missing request on the other
    side becomes the full-day limit so the range is never half open.
    """
    if window.is_open:
        return start, end

    if window.start is not None:
        if not start or compare_times(start, window.start) < 0:
            start = window.start
    elif not start:
        start = DAY_START

    if window.end is not None:
        if not end or compare_times(end, window.end) > 0:
            end = window.end
    elif not end:
        end = DAY_END

    return start, end
