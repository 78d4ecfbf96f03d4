"""Date admission rules: allowed weekdays, public holidays and holiday eves.

Holiday tables are a data dependency. They are looked up through a
``HolidayProvider`` so that callers (and tests) can swap the ``holidays``
package for a fixed table.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from functools import lru_cache
from typing import Protocol

import holidays
import pytz

from quorum.domain.models import HolidaysPolicy
from quorum.observability import get_logger
from quorum.services.times import weekday_index

logger = get_logger(__name__)


class HolidayProvider(Protocol):
    def holiday_name(self, day: date, country_code: str) -> str | None: ...


class LibraryHolidays:
    """Public holidays from the ``holidays`` package, one table per country."""

    def __init__(self) -> None:
        self._tables: dict[str, holidays.HolidayBase | None] = {}
        self._lock = threading.Lock()

    def holiday_name(self, day: date, country_code: str) -> str | None:
        with self._lock:
            table = self._table(country_code)
            if table is None:
                return None
            return table.get(day)

    def _table(self, country_code: str) -> holidays.HolidayBase | None:
        if country_code not in self._tables:
            try:
                self._tables[country_code] = holidays.country_holidays(country_code)
            except NotImplementedError:
                logger.debug("holiday_country_unsupported", country_code=country_code)
                self._tables[country_code] = None
        return self._tables[country_code]


class StaticHolidays:
    """Fixed holiday table keyed by country code, then date."""

    def __init__(self, table: Mapping[str, Mapping[date, str]]) -> None:
        self._table = {code.upper(): dict(days) for code, days in table.items()}

    def holiday_name(self, day: date, country_code: str) -> str | None:
        return self._table.get(country_code.upper(), {}).get(day)


default_holidays = LibraryHolidays()


@lru_cache(maxsize=1)
def _zone_to_country() -> dict[str, str]:
    mapping: dict[str, str] = {}
    for code in pytz.country_timezones:
        for zone in pytz.country_timezones[code]:
            mapping.setdefault(zone, code.upper())
    return mapping


def country_from_timezone(timezone: str) -> str:
    """Return the ISO country code owning an IANA zone, or "" if none does."""
    return _zone_to_country().get(timezone, "")


def is_weekday_allowed(weekday: int, allowed_weekdays: Iterable[int]) -> bool:
    return weekday in set(allowed_weekdays)


def holiday_name(
    day: date, country_code: str, provider: HolidayProvider | None = None
) -> str | None:
    if not country_code:
        return None
    return (provider or default_holidays).holiday_name(day, country_code)


def is_holiday(
    day: date, country_code: str, provider: HolidayProvider | None = None
) -> bool:
    return holiday_name(day, country_code, provider) is not None


def is_holiday_eve(
    day: date, country_code: str, provider: HolidayProvider | None = None
) -> bool:
    """True when the following day is a public holiday."""
    return is_holiday(day + timedelta(days=1), country_code, provider)


def is_date_allowed(
    day: date,
    timezone: str,
    allowed_weekdays: Iterable[int],
    holidays_policy: HolidaysPolicy | str,
    allow_holiday_eves: bool,
    provider: HolidayProvider | None = None,
) -> bool:
    """Decide whether participants may register availability on ``day``.

    - ``block``: a holiday is refused whatever its weekday.
    - ``allow``: a holiday is accepted whatever its weekday.
    - ``ignore``: holidays are ordinary days.

    Otherwise the weekday must be allowed, or the day must be a holiday eve
    with ``allow_holiday_eves`` set.
    """
    country_code = country_from_timezone(timezone)
    holiday = bool(country_code) and is_holiday(day, country_code, provider)

    policy = HolidaysPolicy(holidays_policy)
    if holiday and policy == HolidaysPolicy.BLOCK:
        return False
    if holiday and policy == HolidaysPolicy.ALLOW:
        return True

    if is_weekday_allowed(weekday_index(day), allowed_weekdays):
        return True

    return (
        bool(country_code)
        and allow_holiday_eves
        and is_holiday_eve(day, country_code, provider)
    )
